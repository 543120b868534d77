"""
Model handle for local causal-LM inference.

This module provides the ModelHandle class that owns the tokenizer and
weights of the served model. It is loaded once at service startup and is
read-only afterwards; generation is a blocking call.
"""

import os
import time
import threading
from typing import Optional, Dict, Any
from dataclasses import dataclass, field

from gpu_bridge.inference.config import ServiceConfig, is_mock_mode
from gpu_bridge.inference.exceptions import (
    ModelLoadError, ModelNotLoadedError, GenerationError
)
from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("model_handle")

MOCK_CONTINUATION = (
    "is a placeholder continuation produced by the mock model so that the "
    "service can be exercised without downloading any weights or touching "
    "an accelerator. Every word counts as one token and the text never "
    "grows past the requested maximum length no matter how long the prompt "
    "or the requested length happens to be in a given call to the endpoint."
)


@dataclass
class GenerationResult:
    """Result from text generation."""
    text: str
    tokens_generated: int
    generation_time_ms: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire payload of POST /generate."""
        return {"generated_text": self.text}


class ModelHandle:
    """
    Loaded tokenizer and model for one service instance.

    Example:
        handle = ModelHandle(config)
        handle.load()
        result = handle.generate("Hello", max_length=20)
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        mock_mode: Optional[bool] = None
    ):
        """
        Initialize the handle without loading anything.

        Args:
            config: Service configuration
            mock_mode: Whether to use the canned mock generator
        """
        self.config = config or ServiceConfig.from_env()
        self.mock_mode = is_mock_mode() if mock_mode is None else mock_mode

        self._tokenizer = None
        self._model = None
        self._loaded = False
        self._load_lock = threading.Lock()

        logger.info(f"ModelHandle created (mock_mode={self.mock_mode})")

    @property
    def model_id(self) -> str:
        return self.config.model.model_id

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """
        Load tokenizer and weights from the configured model directory.

        Loading happens at most once. A call on a loaded handle, or one
        made while another load is running, is ignored.

        Raises:
            ModelLoadError: If the directory is missing or loading fails
        """
        if not self._load_lock.acquire(blocking=False):
            logger.warning("Model load already in progress, ignoring request")
            return

        try:
            if self._loaded:
                logger.warning("Model already loaded, ignoring load request")
                return

            if self.mock_mode:
                self._loaded = True
                logger.info("Mock mode - skipping model loading")
                return

            self._load_weights()
            self._loaded = True
            logger.info(f"Model {self.model_id} loaded successfully")

        finally:
            self._load_lock.release()

    def _load_weights(self) -> None:
        model_dir = self.config.model.model_dir
        if not os.path.isdir(model_dir):
            raise ModelLoadError(f"Model directory not found at {model_dir}")

        logger.info(f"Loading model and tokenizer from {model_dir}...")

        try:
            import torch
            from transformers import AutoTokenizer, AutoModelForCausalLM

            dtype_name = self.config.model.torch_dtype
            torch_dtype = dtype_name if dtype_name == "auto" else getattr(torch, dtype_name)

            tokenizer = AutoTokenizer.from_pretrained(model_dir)
            model = AutoModelForCausalLM.from_pretrained(
                model_dir,
                torch_dtype=torch_dtype,
                device_map=self.config.model.device_map
            )
            model.eval()

            if tokenizer.pad_token is None:
                tokenizer.pad_token = tokenizer.eos_token

        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise ModelLoadError(f"Failed to load model from {model_dir}: {e}") from e

        self._tokenizer = tokenizer
        self._model = model

    def clamp_max_length(self, max_length: Optional[int]) -> int:
        """Bound a requested max_length into [1, max_length_limit]."""
        if max_length is None:
            max_length = self.config.generation.default_max_length
        return max(1, min(int(max_length), self.config.generation.max_length_limit))

    def generate(self, prompt: str, max_length: Optional[int] = None) -> GenerationResult:
        """
        Generate text from prompt. Blocks until the model returns.

        The output is capped at max_length tokens in total, prompt
        included, and the decoded text starts with the prompt.

        Args:
            prompt: Input prompt (may be empty)
            max_length: Token cap, clamped to the configured limit

        Returns:
            GenerationResult: Generation result

        Raises:
            ModelNotLoadedError: If load() has not completed
            GenerationError: If the model call fails
        """
        if not self._loaded:
            raise ModelNotLoadedError()

        max_length = self.clamp_max_length(max_length)

        if self.mock_mode:
            return self._mock_generate(prompt, max_length)

        gen_config = self.config.generation
        start_time = time.time()

        try:
            import torch

            inputs = self._tokenizer(prompt, return_tensors="pt").to(self._model.device)
            prompt_tokens = inputs["input_ids"].shape[-1]

            with torch.no_grad():
                outputs = self._model.generate(
                    **inputs,
                    max_length=max_length,
                    do_sample=gen_config.do_sample,
                    temperature=gen_config.temperature,
                    top_p=gen_config.top_p,
                    pad_token_id=self._tokenizer.pad_token_id
                )

            text = self._tokenizer.decode(outputs[0], skip_special_tokens=True)

        except Exception as e:
            logger.error(f"Generation error: {e}")
            raise GenerationError(str(e)) from e

        return GenerationResult(
            text=text,
            tokens_generated=max(0, outputs.shape[-1] - prompt_tokens),
            generation_time_ms=(time.time() - start_time) * 1000
        )

    def _mock_generate(self, prompt: str, max_length: int) -> GenerationResult:
        """Generate a deterministic response for testing."""
        prompt_words = prompt.split()
        words = (prompt_words + MOCK_CONTINUATION.split())[:max_length]

        return GenerationResult(
            text=" ".join(words),
            tokens_generated=max(0, len(words) - len(prompt_words)),
            generation_time_ms=1.0,
            metadata={"mock": True}
        )

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the loaded model."""
        return {
            "model_id": self.model_id,
            "model_dir": "mock" if self.mock_mode else self.config.model.model_dir,
            "loaded": self._loaded,
            "mock_mode": self.mock_mode
        }

    def unload(self) -> None:
        """Release the model. Only called at process shutdown."""
        self._model = None
        self._tokenizer = None
        self._loaded = False
        logger.info("Model unloaded")


class MockModelHandle(ModelHandle):
    """Mock handle for testing."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__(config or ServiceConfig(), mock_mode=True)
