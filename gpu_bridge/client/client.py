"""
HTTP client for the inference service.

This module provides InferenceClient (blocking, for notebooks and
scripts) and AsyncInferenceClient (for asyncio code). Neither raises for
an unreachable service or a failed generation: every call returns a
dict, and failures are recognisable by their "error" key.
"""

from typing import Optional, Dict, Any

import httpx

from gpu_bridge.client.models import (
    ClientConfig, CONNECTION_FAILED, error_result, unhealthy_result,
    describe_exception, parse_response
)
from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("inference_client")

# Failures normalised into an error result. Anything else propagates.
EXPECTED_ERRORS = (httpx.HTTPError, ValueError)


def _resolve_config(
    host: Optional[str],
    port: Optional[int],
    timeout: Optional[float],
    config: Optional[ClientConfig]
) -> ClientConfig:
    base = config or ClientConfig.from_env()
    return ClientConfig(
        host=host or base.host,
        port=port or base.port,
        timeout=base.timeout if timeout is None else timeout
    )


def _generate_payload(prompt: str, max_length: int) -> Dict[str, Any]:
    return {"prompt": prompt, "max_length": max_length}


class InferenceClient:
    """
    Blocking client for the inference service.

    Example:
        client = InferenceClient(host="host.multipass", port=5000)
        result = client.generate_text("Hello", max_length=50)
        if "error" in result:
            print(result["error"])
        else:
            print(result["generated_text"])
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        timeout: Optional[float] = None,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the client. No connection is made until the first call.

        Args:
            host: Service host (default from ClientConfig.from_env())
            port: Service port
            timeout: Per-request timeout in seconds
            config: Base configuration to override
            transport: Custom httpx transport
        """
        self.config = _resolve_config(host, port, timeout, config)
        self.base_url = self.config.base_url
        self._transport = transport
        self._http_client: Optional[httpx.Client] = None

    def _client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport
            )
        return self._http_client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "InferenceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def health_check(self) -> Dict[str, Any]:
        """Check if the service process is up."""
        try:
            result = parse_response(self._client().get("/health"))
        except EXPECTED_ERRORS as e:
            logger.warning(f"Health check failed: {e}")
            return unhealthy_result()

        if "error" in result:
            return unhealthy_result(result["error"])
        return result

    def get_info(self) -> Dict[str, Any]:
        """Get host, accelerator and model information from the service."""
        try:
            return parse_response(self._client().get("/info"))
        except EXPECTED_ERRORS as e:
            logger.warning(f"Info request failed: {e}")
            return error_result(CONNECTION_FAILED)

    def generate_text(self, prompt: str, max_length: int = 100) -> Dict[str, Any]:
        """
        Generate text using the served model.

        Args:
            prompt: Input prompt
            max_length: Token cap, prompt included

        Returns:
            {"generated_text": ...} or {"error": ...}
        """
        try:
            return parse_response(
                self._client().post("/generate", json=_generate_payload(prompt, max_length))
            )
        except EXPECTED_ERRORS as e:
            logger.warning(f"Generation request failed: {e}")
            return error_result(describe_exception(e))


class AsyncInferenceClient:
    """
    Async client for the inference service.

    Same operations and result shapes as InferenceClient.

    Example:
        async with AsyncInferenceClient(host="localhost") as client:
            info = await client.get_info()
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        timeout: Optional[float] = None,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = _resolve_config(host, port, timeout, config)
        self.base_url = self.config.base_url
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "AsyncInferenceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def health_check(self) -> Dict[str, Any]:
        """Check if the service process is up."""
        try:
            client = await self._client()
            result = parse_response(await client.get("/health"))
        except EXPECTED_ERRORS as e:
            logger.warning(f"Health check failed: {e}")
            return unhealthy_result()

        if "error" in result:
            return unhealthy_result(result["error"])
        return result

    async def get_info(self) -> Dict[str, Any]:
        """Get host, accelerator and model information from the service."""
        try:
            client = await self._client()
            return parse_response(await client.get("/info"))
        except EXPECTED_ERRORS as e:
            logger.warning(f"Info request failed: {e}")
            return error_result(CONNECTION_FAILED)

    async def generate_text(self, prompt: str, max_length: int = 100) -> Dict[str, Any]:
        """Generate text using the served model."""
        try:
            client = await self._client()
            response = await client.post(
                "/generate", json=_generate_payload(prompt, max_length)
            )
            return parse_response(response)
        except EXPECTED_ERRORS as e:
            logger.warning(f"Generation request failed: {e}")
            return error_result(describe_exception(e))
