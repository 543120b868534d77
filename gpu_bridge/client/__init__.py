"""
Client module for the inference service.

Used from the VM or a notebook to reach the model served on the host.
"""

from gpu_bridge.client.client import InferenceClient, AsyncInferenceClient
from gpu_bridge.client.models import ClientConfig, CONNECTION_FAILED, is_error

__all__ = [
    "InferenceClient",
    "AsyncInferenceClient",
    "ClientConfig",
    "CONNECTION_FAILED",
    "is_error"
]
