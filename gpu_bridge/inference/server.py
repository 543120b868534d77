"""
Inference Server for local model serving.

This module provides a FastAPI-based server exposing the loaded model
over HTTP: a liveness check, a service info snapshot and a text
generation endpoint. Generation runs one request at a time.
"""

import asyncio
import socket
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional, Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from gpu_bridge import __version__
from gpu_bridge.inference.accelerator import describe_accelerator
from gpu_bridge.inference.config import ServiceConfig
from gpu_bridge.inference.exceptions import GenerationTimeoutError
from gpu_bridge.inference.generator import ModelHandle, GenerationResult
from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("inference_server")


class GenerateRequest(BaseModel):
    """Request for text generation."""
    model_config = ConfigDict(extra="ignore")

    prompt: str = Field(default="", description="Input prompt")
    max_length: Optional[int] = Field(
        default=None, ge=1, description="Token cap, prompt included"
    )


class GenerateResponse(BaseModel):
    """Successful generation."""
    generated_text: str


class ErrorResponse(BaseModel):
    """Failed request."""
    error: str


class HealthResponse(BaseModel):
    """Liveness response. Says nothing about model readiness."""
    status: str = "healthy"


class InfoResponse(BaseModel):
    """Service info snapshot, computed per request."""
    status: str
    host: str
    gpu: str
    model: str


class InferenceServer:
    """
    FastAPI-based inference server.

    Owns one ModelHandle, injected or built from config. Model calls go
    through a single-slot semaphore onto a one-thread executor, so at
    most one generation runs at any time.

    Example:
        server = InferenceServer(config)
        server.load_model()
        await server.start()
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        handle: Optional[ModelHandle] = None,
        mock_mode: Optional[bool] = None
    ):
        """
        Initialize inference server.

        Args:
            config: Service configuration
            handle: Model handle to serve (built from config if omitted)
            mock_mode: Whether to use mock mode when building the handle
        """
        self.config = config or ServiceConfig.from_env()
        self.handle = handle or ModelHandle(self.config, mock_mode)
        self._owns_handle = handle is None
        self.mock_mode = self.handle.mock_mode

        self.app = None
        self._server = None
        self._slot: Optional[asyncio.Semaphore] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._reset_workers()

        logger.info(f"InferenceServer created (mock_mode={self.mock_mode})")

    def _reset_workers(self) -> None:
        self._slot = asyncio.Semaphore(1)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="generate")

    def load_model(self) -> None:
        """Load the model. Raises ModelLoadError on failure."""
        logger.info("Loading model and tokenizer...")
        self.handle.load()
        logger.info(f"Model ready: {self.handle.get_model_info()}")

    async def generate(self, prompt: str, max_length: Optional[int] = None) -> GenerationResult:
        """
        Run one generation on the worker thread.

        The timeout covers waiting for the slot as well as the model call.
        A request that times out while queued never reaches the model; one
        that times out mid-call keeps the slot until the model returns.

        Raises:
            GenerationTimeoutError: If the configured timeout expires
            GenerationError: If the model call fails
        """
        loop = asyncio.get_running_loop()
        timeout = self.config.generation.timeout
        deadline = None if timeout is None else loop.time() + timeout
        slot = self._slot

        try:
            await asyncio.wait_for(slot.acquire(), timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(timeout)

        try:
            future = loop.run_in_executor(
                self._executor, self.handle.generate, prompt, max_length
            )
        except Exception:
            slot.release()
            raise
        future.add_done_callback(lambda f: self._release_slot(slot, f))

        remaining = None if deadline is None else max(0.0, deadline - loop.time())
        try:
            return await asyncio.wait_for(asyncio.shield(future), remaining)
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(timeout)

    @staticmethod
    def _release_slot(slot: asyncio.Semaphore, future: asyncio.Future) -> None:
        slot.release()
        if not future.cancelled():
            # Mark the outcome retrieved when nobody is awaiting it any more.
            future.exception()

    def service_info(self) -> InfoResponse:
        """Build a fresh /info snapshot."""
        return InfoResponse(
            status="running",
            host=socket.gethostname(),
            gpu=describe_accelerator(),
            model=self.handle.model_id
        )

    def _apply_cors(self, response: Response) -> None:
        server_config = self.config.server
        response.headers["Access-Control-Allow-Origin"] = ", ".join(server_config.cors_origins)
        response.headers["Access-Control-Allow-Methods"] = ", ".join(server_config.cors_methods)
        response.headers["Access-Control-Allow-Headers"] = ", ".join(server_config.cors_headers)

    def create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            # Startup
            if self._executor is None:
                self._reset_workers()
            logger.info(f"Inference server started (model={self.handle.model_id})")
            yield
            # Shutdown
            self._executor.shutdown(wait=False)
            self._executor = None
            # A caller-supplied handle may back another app start.
            if self._owns_handle:
                self.handle.unload()
            logger.info("Inference server stopped")

        app = FastAPI(
            title="gpu-bridge Inference Server",
            description="Local causal language model over HTTP",
            version=__version__,
            lifespan=lifespan
        )

        @app.middleware("http")
        async def cors_and_access_log(request: Request, call_next):
            """Answer OPTIONS, add CORS headers and log every request."""
            start_time = time.time()

            if request.method == "OPTIONS":
                response = Response(status_code=200)
            else:
                response = await call_next(request)

            if self.config.server.enable_cors:
                self._apply_cors(response)

            duration = time.time() - start_time
            logger.info(
                f"{request.method} {request.url.path} - status={response.status_code} "
                f"- latency={duration:.3f}s"
            )
            return response

        @app.exception_handler(StarletteHTTPException)
        async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
            # Unknown method on a known path is reported like an unknown path.
            if exc.status_code in (404, 405):
                return JSONResponse(status_code=404, content={"error": "Not Found"})
            return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

        @app.get("/health", response_model=HealthResponse)
        async def health_check():
            """Health check endpoint."""
            return HealthResponse(status="healthy")

        @app.get("/info", response_model=InfoResponse)
        async def info():
            """Service, host and model information."""
            return self.service_info()

        @app.post(
            "/generate",
            response_model=GenerateResponse,
            responses={500: {"model": ErrorResponse}}
        )
        async def generate(request: Request):
            """Generate text from prompt."""
            try:
                body = await request.body()
                payload = GenerateRequest.model_validate_json(body or b"{}")
                result = await self.generate(payload.prompt, payload.max_length)
            except Exception as e:
                logger.error(f"Generation request failed: {e}")
                return JSONResponse(status_code=500, content={"error": str(e)})

            logger.info(
                f"Generated {result.tokens_generated} tokens "
                f"in {result.generation_time_ms:.1f}ms"
            )
            return result.to_dict()

        self.app = app
        return app

    async def start(self) -> None:
        """Start serving. Returns when the server is stopped."""
        if self.app is None:
            self.create_app()

        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.config.server.host,
            port=self.config.server.port,
            workers=1,
            log_level=self.config.server.log_level.lower()
        )
        self._server = uvicorn.Server(config)

        logger.info(
            f"Starting inference server on {self.config.server.host}:{self.config.server.port}..."
        )
        await self._server.serve()

    async def stop(self) -> None:
        """Stop the inference server."""
        if self._server:
            self._server.should_exit = True


def create_app(config: Optional[ServiceConfig] = None, mock_mode: Optional[bool] = None) -> Any:
    """
    Load the model and create the FastAPI app.

    Usable as a uvicorn factory:
        uvicorn --factory gpu_bridge.inference.server:create_app
    """
    server = InferenceServer(config or ServiceConfig.from_env(), mock_mode=mock_mode)
    server.load_model()
    return server.create_app()
