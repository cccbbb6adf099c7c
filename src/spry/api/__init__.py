"""
Spry HTTP adapter.

A FastAPI application with a single catch-all route: every HTTP request is
translated into a :class:`~spry.framework.context.Request`, served by one
``Spry.run`` call, and the resulting ``Output`` is returned verbatim.
"""

from spry.api.app import create_app
from spry.api.settings import SpryAPISettings

__all__ = ["create_app", "SpryAPISettings"]
