"""
gpu-bridge: serve a local language model over HTTP for a VM or notebook.

The inference service runs on the host next to the accelerator; the
client is a small failure-tolerant wrapper used from the guest side.
"""

__version__ = "0.1.0"
