"""
Configuration for the inference service.

This module provides configuration dataclasses for loading the local
model and serving it over HTTP. Values come from defaults, a YAML file,
or environment variables, and are fixed once the service starts.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, List
import yaml


@dataclass
class ModelConfig:
    """Configuration for the local causal language model."""
    model_id: str = "TinyLlama-1.1B-Chat-v1.0"
    model_dir: str = "models/tiny-llama"
    torch_dtype: str = "float16"  # "auto", "float16", "bfloat16", "float32"
    device_map: Optional[str] = "auto"


@dataclass
class GenerationConfig:
    """Configuration for text generation."""
    default_max_length: int = 100
    max_length_limit: int = 2048
    temperature: float = 0.7
    top_p: float = 0.9
    do_sample: bool = True
    timeout: Optional[float] = None  # None = no server-side inference timeout


@dataclass
class ServerConfig:
    """Configuration for the HTTP listener."""
    host: str = "0.0.0.0"
    port: int = 5000
    enable_cors: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    cors_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    log_level: str = "INFO"


@dataclass
class ServiceConfig:
    """Complete inference service configuration."""
    model: ModelConfig = field(default_factory=ModelConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "ServiceConfig":
        """Load configuration from YAML file."""
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        for section in ("model", "generation", "server"):
            target = getattr(config, section)
            for key, value in (data.get(section) or {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)

        return config

    @classmethod
    def from_env(cls, base: Optional["ServiceConfig"] = None) -> "ServiceConfig":
        """
        Load configuration from environment variables.

        Args:
            base: Configuration to override (defaults are used if omitted)
        """
        config = base or cls()

        # Model config from env
        if os.getenv("MODEL_ID"):
            config.model.model_id = os.getenv("MODEL_ID")

        if os.getenv("MODEL_DIR"):
            config.model.model_dir = os.getenv("MODEL_DIR")

        if os.getenv("MODEL_TORCH_DTYPE"):
            config.model.torch_dtype = os.getenv("MODEL_TORCH_DTYPE")

        if os.getenv("MODEL_DEVICE_MAP"):
            config.model.device_map = os.getenv("MODEL_DEVICE_MAP")

        # Generation config from env
        if os.getenv("GENERATION_MAX_LENGTH"):
            config.generation.default_max_length = int(os.getenv("GENERATION_MAX_LENGTH"))

        if os.getenv("GENERATION_MAX_LENGTH_LIMIT"):
            config.generation.max_length_limit = int(os.getenv("GENERATION_MAX_LENGTH_LIMIT"))

        if os.getenv("GENERATION_TIMEOUT"):
            config.generation.timeout = float(os.getenv("GENERATION_TIMEOUT"))

        # Server config from env
        if os.getenv("SERVER_HOST"):
            config.server.host = os.getenv("SERVER_HOST")

        if os.getenv("SERVER_PORT"):
            config.server.port = int(os.getenv("SERVER_PORT"))

        if os.getenv("LOG_LEVEL"):
            config.server.log_level = os.getenv("LOG_LEVEL")

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "model": {
                "model_id": self.model.model_id,
                "model_dir": self.model.model_dir,
                "torch_dtype": self.model.torch_dtype,
                "device_map": self.model.device_map
            },
            "generation": {
                "default_max_length": self.generation.default_max_length,
                "max_length_limit": self.generation.max_length_limit,
                "temperature": self.generation.temperature,
                "top_p": self.generation.top_p,
                "do_sample": self.generation.do_sample,
                "timeout": self.generation.timeout
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "enable_cors": self.server.enable_cors,
                "cors_origins": self.server.cors_origins,
                "log_level": self.server.log_level
            }
        }


def is_mock_mode() -> bool:
    """Whether LLM_TYPE selects the canned mock generator."""
    return os.getenv("LLM_TYPE", "LOCAL").upper() == "MOCK"
