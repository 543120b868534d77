"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests,
ensuring MOCK mode is used throughout.
"""

import os
import pytest

# CRITICAL: Set MOCK mode before any imports
os.environ["LLM_TYPE"] = "MOCK"

from gpu_bridge.inference.config import ServiceConfig


@pytest.fixture
def service_config():
    """Service configuration with a recognisable model identifier."""
    config = ServiceConfig()
    config.model.model_id = "demo-model"
    return config


@pytest.fixture
def mock_handle(service_config):
    """Create a loaded mock-mode ModelHandle."""
    from gpu_bridge.inference.generator import MockModelHandle

    handle = MockModelHandle(service_config)
    handle.load()
    yield handle
    handle.unload()


@pytest.fixture
def inference_server(service_config, mock_handle):
    """Create an InferenceServer around the mock handle."""
    from gpu_bridge.inference.server import InferenceServer
    return InferenceServer(service_config, handle=mock_handle)


@pytest.fixture
def test_client(inference_server):
    """FastAPI TestClient with lifespan events running."""
    from fastapi.testclient import TestClient

    with TestClient(inference_server.create_app()) as client:
        yield client

