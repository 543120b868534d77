"""
Inference module for local model serving.

This module provides the host-side HTTP service that loads one causal
language model with transformers and answers health, info and
generation requests.
"""

from gpu_bridge.inference.config import (
    ServiceConfig, ModelConfig, GenerationConfig, ServerConfig
)
from gpu_bridge.inference.exceptions import (
    InferenceError, ModelLoadError, ModelNotLoadedError,
    GenerationError, GenerationTimeoutError
)
from gpu_bridge.inference.generator import (
    ModelHandle, GenerationResult, MockModelHandle
)
from gpu_bridge.inference.server import InferenceServer, create_app

__all__ = [
    "ServiceConfig",
    "ModelConfig",
    "GenerationConfig",
    "ServerConfig",
    "InferenceError",
    "ModelLoadError",
    "ModelNotLoadedError",
    "GenerationError",
    "GenerationTimeoutError",
    "ModelHandle",
    "GenerationResult",
    "MockModelHandle",
    "InferenceServer",
    "create_app"
]
