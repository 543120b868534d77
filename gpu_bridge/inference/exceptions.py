"""
Custom exceptions for the inference service.

Startup errors (model load) are fatal to the process; per-request
errors are turned into a 500 response with an error payload.
"""


class InferenceError(Exception):
    """Base exception for inference service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ModelLoadError(InferenceError):
    """Raised when tokenizer or weights cannot be loaded."""

    def __init__(self, message: str = "Failed to load model"):
        super().__init__(message)


class ModelNotLoadedError(InferenceError):
    """Raised when generation is requested before the model is loaded."""

    def __init__(self, message: str = "Model not loaded"):
        super().__init__(message)


class GenerationError(InferenceError):
    """Raised when the model call itself fails."""

    def __init__(self, message: str = "Generation failed"):
        super().__init__(message)


class GenerationTimeoutError(GenerationError):
    """Raised when generation exceeds the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Generation timed out after {timeout:g}s")
        self.timeout = timeout
