"""
Logging package for syncvisor.
Configures console logging for the supervisor and the relayed Syncthing output.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
