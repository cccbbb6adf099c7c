"""HTTP adapter middleware and exception handlers."""

from spry.api.middleware.errors import unhandled_exception_handler

__all__ = ["unhandled_exception_handler"]
