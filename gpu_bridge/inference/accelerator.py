"""Accelerator detection for the /info endpoint."""

from gpu_bridge.utils.logging_config import setup_logging

logger = setup_logging("accelerator")

NOT_AVAILABLE = "Not Available"


def describe_accelerator() -> str:
    """
    Describe the accelerator visible to this process.

    Checked on every call. A failing check reports the accelerator as
    absent instead of raising.

    Returns:
        str: "Available (<device name>)" or "Not Available"
    """
    try:
        import torch

        if torch.cuda.is_available():
            return f"Available ({torch.cuda.get_device_name(0)})"

        mps = getattr(torch.backends, "mps", None)
        if mps is not None and mps.is_available():
            return "Available (Apple MPS)"

    except Exception as e:
        logger.debug(f"Accelerator check failed: {e}")

    return NOT_AVAILABLE
