import logging
import sys
import os


def setup_logging(name: str = "gpu_bridge", log_level: str = None) -> logging.Logger:
    """
    Sets up logging for a component of the service.

    Args:
        name (str): The name of the logger.
        log_level (str): Logging level (DEBUG, INFO, WARNING, ERROR).
            Defaults to the LOG_LEVEL environment variable or INFO.

    Returns:
        logging.Logger: Configured logger instance.
    """
    log_dir = os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(name)
    level_name = log_level or os.getenv("LOG_LEVEL", "INFO")
    level = getattr(logging, level_name.upper(), logging.INFO)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # Console Handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # File Handler
        file_handler = logging.FileHandler(
            os.path.join(log_dir, f"{name}.log"), encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    return logger
