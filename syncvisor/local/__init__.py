"""
Local package for syncvisor.

This package holds everything that runs next to the supervised Syncthing
process: the process supervisor, the REST API clients and the shared
settings object.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
