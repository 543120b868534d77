"""
Tests for the inference HTTP service.

All tests use MOCK mode - no real model loading.
"""

import asyncio
import logging
import os
import socket
import threading
import time

import httpx
import pytest

# Ensure MOCK mode for all tests
os.environ["LLM_TYPE"] = "MOCK"

from fastapi.testclient import TestClient

from gpu_bridge.client import AsyncInferenceClient
from gpu_bridge.inference.exceptions import GenerationError, GenerationTimeoutError
from gpu_bridge.inference.generator import MockModelHandle
from gpu_bridge.inference.run import build_config, main, parse_args
from gpu_bridge.inference.server import InferenceServer, create_app


class FailingOnceHandle(MockModelHandle):
    """Raises on the first generation, then behaves normally."""

    def __init__(self, config):
        super().__init__(config)
        self.calls = 0

    def generate(self, prompt, max_length=None):
        self.calls += 1
        if self.calls == 1:
            raise GenerationError("CUDA out of memory")
        return super().generate(prompt, max_length)


class SlowHandle(MockModelHandle):
    """Sleeps inside generate and records how many calls overlap."""

    def __init__(self, config, delay=0.05):
        super().__init__(config)
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = 0
        self._lock = threading.Lock()

    def generate(self, prompt, max_length=None):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return super().generate(prompt, max_length)


def _serve(service_config, handle):
    handle.load()
    server = InferenceServer(service_config, handle=handle)
    return TestClient(server.create_app())


class TestHealth:
    """Tests for GET /health."""

    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_health_is_idempotent(self, test_client):
        for _ in range(3):
            assert test_client.get("/health").json() == {"status": "healthy"}
        assert test_client.get("/info").json()["model"] == "demo-model"

    def test_health_without_loaded_model(self, service_config):
        handle = MockModelHandle(service_config)
        server = InferenceServer(service_config, handle=handle)

        with TestClient(server.create_app()) as client:
            assert client.get("/health").json() == {"status": "healthy"}


class TestInfo:
    """Tests for GET /info."""

    def test_info(self, test_client):
        response = test_client.get("/info")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "running"
        assert data["model"] == "demo-model"
        assert data["host"] == socket.gethostname()
        assert data["gpu"] == "Not Available" or data["gpu"].startswith("Available (")

    def test_info_model_is_stable(self, test_client):
        models = {test_client.get("/info").json()["model"] for _ in range(3)}
        assert models == {"demo-model"}


class TestGenerate:
    """Tests for POST /generate."""

    def test_generate(self, test_client):
        response = test_client.post("/generate", json={"prompt": "Hello", "max_length": 20})
        assert response.status_code == 200

        data = response.json()
        assert set(data) == {"generated_text"}
        assert data["generated_text"].startswith("Hello")
        assert len(data["generated_text"].split()) <= 20

    def test_missing_prompt(self, test_client):
        response = test_client.post("/generate", json={"max_length": 5})
        assert response.status_code == 200
        assert isinstance(response.json()["generated_text"], str)

    def test_empty_body_uses_defaults(self, test_client):
        response = test_client.post("/generate")
        assert response.status_code == 200
        assert len(response.json()["generated_text"].split()) <= 100

    def test_max_length_is_clamped(self, service_config):
        service_config.generation.max_length_limit = 10
        with _serve(service_config, MockModelHandle(service_config)) as client:
            response = client.post("/generate", json={"prompt": "Hi", "max_length": 100000})

        assert response.status_code == 200
        assert len(response.json()["generated_text"].split()) <= 10

    def test_invalid_max_length(self, test_client):
        response = test_client.post("/generate", json={"prompt": "Hi", "max_length": 0})
        assert response.status_code == 500
        assert response.json()["error"]

    def test_malformed_json_then_valid_request(self, test_client):
        response = test_client.post(
            "/generate",
            content=b"{not json",
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 500
        assert response.json()["error"]
        assert "generated_text" not in response.json()

        response = test_client.post("/generate", json={"prompt": "Hello", "max_length": 5})
        assert response.status_code == 200
        assert response.json()["generated_text"]

    def test_non_object_body(self, test_client):
        response = test_client.post("/generate", json=["Hello"])
        assert response.status_code == 500
        assert response.json()["error"]

    def test_generation_failure_does_not_break_service(self, service_config):
        with _serve(service_config, FailingOnceHandle(service_config)) as client:
            failed = client.post("/generate", json={"prompt": "Hello"})
            assert failed.status_code == 500
            assert failed.json() == {"error": "CUDA out of memory"}

            ok = client.post("/generate", json={"prompt": "Hello", "max_length": 5})
            assert ok.status_code == 200
            assert client.get("/health").status_code == 200

    def test_generation_timeout(self, service_config):
        service_config.generation.timeout = 0.05
        with _serve(service_config, SlowHandle(service_config, delay=0.5)) as client:
            response = client.post("/generate", json={"prompt": "Hello"})

        assert response.status_code == 500
        assert "timed out" in response.json()["error"]

    def test_generate_logs_tokens_and_latency(self, test_client, caplog):
        with caplog.at_level(logging.INFO, logger="inference_server"):
            response = test_client.post("/generate", json={"prompt": "Hello", "max_length": 6})

        assert response.status_code == 200
        assert any(
            "Generated 5 tokens in" in record.getMessage() for record in caplog.records
        )


class TestRoutingAndCors:
    """Tests for unknown routes and CORS headers."""

    def test_unknown_path(self, test_client):
        response = test_client.get("/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_wrong_method(self, test_client):
        assert test_client.get("/generate").status_code == 404
        assert test_client.post("/health").status_code == 404

    def test_options(self, test_client):
        response = test_client.options("/generate")
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "Content-Type" in response.headers["access-control-allow-headers"]

    def test_options_on_unknown_path(self, test_client):
        assert test_client.options("/anything").status_code == 200

    def test_cors_headers_on_every_response(self, test_client):
        for response in (
            test_client.get("/health"),
            test_client.get("/missing"),
            test_client.post("/generate", content=b"oops"),
        ):
            assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_disabled(self, service_config):
        service_config.server.enable_cors = False
        with _serve(service_config, MockModelHandle(service_config)) as client:
            response = client.get("/health")
        assert "access-control-allow-origin" not in response.headers


class TestSerialGeneration:
    """Generation runs one request at a time."""

    @pytest.mark.asyncio
    async def test_generations_do_not_overlap(self, service_config):
        handle = SlowHandle(service_config)
        handle.load()
        server = InferenceServer(service_config, handle=handle)

        results = await asyncio.gather(
            *(server.generate(f"prompt {i}", 5) for i in range(4))
        )

        assert handle.max_active == 1
        assert [r.text.split()[1] for r in results] == ["0", "1", "2", "3"]

    @pytest.mark.asyncio
    async def test_timed_out_burst_runs_model_once(self, service_config):
        service_config.generation.timeout = 0.05
        handle = SlowHandle(service_config, delay=0.2)
        handle.load()
        server = InferenceServer(service_config, handle=handle)

        results = await asyncio.gather(
            *(server.generate(f"prompt {i}", 5) for i in range(5)),
            return_exceptions=True
        )
        assert all(isinstance(r, GenerationTimeoutError) for r in results)

        await asyncio.sleep(0.6)
        assert handle.calls == 1
        assert handle.active == 0

        service_config.generation.timeout = None
        result = await server.generate("after", 3)
        assert result.text.startswith("after")
        assert handle.calls == 2

    @pytest.mark.asyncio
    async def test_new_request_waits_for_abandoned_call(self, service_config):
        service_config.generation.timeout = 0.05
        handle = SlowHandle(service_config, delay=0.2)
        handle.load()
        server = InferenceServer(service_config, handle=handle)

        with pytest.raises(GenerationTimeoutError):
            await server.generate("first", 5)

        service_config.generation.timeout = None
        result = await server.generate("second", 5)

        assert result.text.startswith("second")
        assert handle.max_active == 1
        assert handle.calls == 2


class TestClientAgainstService:
    """AsyncInferenceClient talking to the app in-process."""

    @pytest.mark.asyncio
    async def test_round_trip(self, inference_server):
        transport = httpx.ASGITransport(app=inference_server.create_app())

        async with AsyncInferenceClient(host="testserver", port=80, transport=transport) as client:
            assert await client.health_check() == {"status": "healthy"}

            info = await client.get_info()
            assert info["model"] == "demo-model"

            result = await client.generate_text("Hello", max_length=20)
            assert len(result["generated_text"].split()) <= 20

            failed = await client.generate_text("Hello", max_length=-1)
            assert set(failed) == {"error"}


class TestStartup:
    """Tests for the command-line entry point and app factory."""

    def test_build_config_flags_override(self):
        args = parse_args(["--port", "6100", "--model-id", "cli-model", "--host", "127.0.0.1"])
        config = build_config(args)
        assert config.server.port == 6100
        assert config.server.host == "127.0.0.1"
        assert config.model.model_id == "cli-model"

    def test_load_failure_exits_non_zero(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLM_TYPE", "LOCAL")
        exit_code = main(["--model-dir", str(tmp_path / "missing")])
        assert exit_code == 1

    def test_port_in_use_exits_non_zero(self, monkeypatch):
        monkeypatch.setenv("LLM_TYPE", "MOCK")
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = taken.getsockname()[1]

            with pytest.raises(SystemExit) as exc_info:
                main(["--host", "127.0.0.1", "--port", str(port), "--mock"])

        assert exc_info.value.code not in (0, None)

    def test_app_restarts_with_injected_handle(self, service_config, mock_handle):
        server = InferenceServer(service_config, handle=mock_handle)
        app = server.create_app()

        for _ in range(2):
            with TestClient(app) as client:
                response = client.post("/generate", json={"prompt": "Hello", "max_length": 5})
                assert response.status_code == 200

        assert mock_handle.is_loaded

    def test_create_app_factory(self, service_config):
        app = create_app(service_config, mock_mode=True)
        with TestClient(app) as client:
            assert client.get("/info").json()["model"] == "demo-model"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
