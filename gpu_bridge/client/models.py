"""
Configuration and result shapes for the inference client.

Every client call returns a plain dict. Success payloads are the
service's JSON body; failures carry an "error" key and nothing else
(health checks also report "status": "unhealthy").
"""

import os
from dataclasses import dataclass
from typing import Dict, Any

import httpx

CONNECTION_FAILED = "Connection failed"


@dataclass
class ClientConfig:
    """Configuration for reaching the inference service."""
    host: str = "host.multipass"
    port: int = 5000
    timeout: float = 5.0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("GPU_BRIDGE_HOST", "host.multipass"),
            port=int(os.getenv("GPU_BRIDGE_PORT", "5000")),
            timeout=float(os.getenv("GPU_BRIDGE_TIMEOUT", "5"))
        )


def is_error(result: Dict[str, Any]) -> bool:
    """Whether a client result is the error variant."""
    return "error" in result


def error_result(message: str) -> Dict[str, Any]:
    return {"error": message}


def unhealthy_result(message: str = CONNECTION_FAILED) -> Dict[str, Any]:
    return {"status": "unhealthy", "error": message}


def describe_exception(exc: Exception) -> str:
    """Exception text, or the exception type when the text is empty."""
    return str(exc) or type(exc).__name__


def parse_response(response: httpx.Response) -> Dict[str, Any]:
    """
    Turn a service response into a result dict.

    Non-2xx replies become the error variant, keeping the service's
    message when it sent one.

    Raises:
        ValueError: If a 2xx body is not a JSON object
    """
    if response.is_error:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return error_result(str(data["error"]))
        return error_result(f"HTTP {response.status_code}")

    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected response body: {data!r}")
    return data
