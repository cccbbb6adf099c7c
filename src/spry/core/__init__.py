"""
Spry core - ambient primitives shared by every layer.

- ``errors``: typed error hierarchy mapped to core response codes
- ``logging``: structlog configuration and request-scoped context
- ``hashing``: deterministic envelope hashing
- ``settings``: ``SpryConfig`` and ``load_config``
"""

from spry.core.errors import ErrorCategory, SpryError
from spry.core.hashing import compute_hash, envelope_hash
from spry.core.logging import configure_logging, get_logger
from spry.core.settings import SpryConfig, load_config

__all__ = [
    "ErrorCategory",
    "SpryError",
    "compute_hash",
    "envelope_hash",
    "configure_logging",
    "get_logger",
    "SpryConfig",
    "load_config",
]
