"""
Command-line entry point for the inference service.

Loads the model first and only then binds the listener. Either step
failing ends the process with a non-zero exit status.
"""

import argparse
import asyncio
import os
import sys

from gpu_bridge.inference.config import ServiceConfig, is_mock_mode
from gpu_bridge.inference.exceptions import ModelLoadError
from gpu_bridge.inference.server import InferenceServer
from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("gpu_bridge_serve")


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Merge YAML file, environment and command-line flags, in that order."""
    config = ServiceConfig.from_yaml(args.config) if args.config else ServiceConfig()
    config = ServiceConfig.from_env(config)

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.model_dir:
        config.model.model_dir = args.model_dir
    if args.model_id:
        config.model.model_id = args.model_id
    if args.log_level:
        config.server.log_level = args.log_level

    return config


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve a local language model over HTTP"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=os.getenv("GPU_BRIDGE_CONFIG"),
        help="Path to a YAML configuration file"
    )
    parser.add_argument("--host", type=str, help="Host to bind")
    parser.add_argument("--port", type=int, help="Port to bind")
    parser.add_argument(
        "--model-dir",
        type=str,
        help="Local directory holding tokenizer and weights"
    )
    parser.add_argument(
        "--model-id",
        type=str,
        help="Model identifier reported by /info"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Serve the canned mock generator instead of a real model"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run the service until interrupted."""
    args = parse_args(argv)
    config = build_config(args)
    mock_mode = args.mock or is_mock_mode()
    logger.debug(f"Resolved configuration: {config.to_dict()}")

    server = InferenceServer(config, mock_mode=mock_mode)

    try:
        server.load_model()
    except ModelLoadError as e:
        logger.error(f"Cannot start service: {e}")
        return 1

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        pass

    logger.info("Server stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
