"""
Structured error types for the Spry framework.

Every failure in the request lifecycle is terminal for the current request
and converges on the same ``stop`` → ``build_response`` → ``send_output``
chain.  The typed errors below are how the pure building blocks (router,
controller registry, parameter pipeline, providers) report those failures
to the :class:`~spry.framework.app.Spry` facade, which translates them into
a JSON envelope using the ``response_code`` carried by each class.

Manifesto:
    - **One error, one code:** Each subclass maps to exactly one core
      response code so the envelope is always reconstructable
    - **Rich context:** Errors carry metadata for logging
    - **Error chaining:** Preserve original exceptions as ``cause``

Architecture:
    ::

        SpryError (category, context, cause, response_code)
        ├── ConfigError          CONFIG      1, 2, 3
        ├── RoutingError         ROUTING     11, 17
        ├── ControllerError      CONTROLLER  12, 13, 15, 16
        ├── ParamsError          PARAMS      14, 20
        ├── OutputError          OUTPUT      10
        └── ProviderError        PROVIDER    31, 33, 40

Tags:
    error-handling, exception-hierarchy, response-codes, spry-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    CONFIG = "CONFIG"
    ROUTING = "ROUTING"
    CONTROLLER = "CONTROLLER"
    PARAMS = "PARAMS"
    VALIDATION = "VALIDATION"
    OUTPUT = "OUTPUT"
    PROVIDER = "PROVIDER"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error."""

    path: str | None = None
    controller: str | None = None
    field_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in ("path", "controller", "field_name"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SpryError(Exception):
    """
    Base exception for all Spry framework errors.

    Attributes:
        message: Human readable description (also used as an additional
            envelope message by the facade).
        category: :class:`ErrorCategory` used for log routing.
        context: :class:`ErrorContext` with structured metadata.
        cause: Optional underlying exception.
        data: Optional body to place in the error envelope.
        messages: Extra messages appended after the code's own message.

    Subclasses set ``response_code`` (core group 0) and
    ``default_category``.

    Examples:
        >>> err = RouteNotFoundError("/missing/")
        >>> err.response_code
        11
        >>> err.to_dict()["category"]
        'ROUTING'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    response_code: int = 0

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        data: Any = None,
        messages: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        self.data = data
        self.messages = list(messages) if messages is not None else [message]

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SpryError:
        """
        Add context to this error (fluent API).

        Usage:
            raise RouteNotFoundError(path).with_context(method="GET")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "response_code": self.response_code,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(SpryError):
    """Configuration error. Detected before the request can be routed."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("messages", [])
        super().__init__(message, **kwargs)


class ConfigMissingError(ConfigError):
    """No configuration was supplied, or the config file does not exist."""

    response_code = 1


class SaltMissingError(ConfigError):
    """Configuration loaded but has no ``salt``."""

    response_code = 2

    def __init__(self, message: str = "Missing salt in config", **kwargs: Any):
        super().__init__(message, **kwargs)


class ConfigMalformedError(ConfigError):
    """Configuration (or the argument bundle) could not be decoded."""

    response_code = 3


# =============================================================================
# ROUTING ERRORS
# =============================================================================


class RoutingError(SpryError):
    default_category = ErrorCategory.ROUTING


class RouteNotFoundError(RoutingError):
    """No registered route matches the request path."""

    response_code = 11

    def __init__(self, path: str, **kwargs: Any):
        self.path = path
        kwargs.setdefault("messages", [])
        super().__init__(f"Route not found: {path}", **kwargs)
        self.context.path = path


class MethodNotAllowedError(RoutingError):
    """The request method is not in the route's ``methods`` set."""

    response_code = 17

    def __init__(self, method: str | None, allowed: list[str], **kwargs: Any):
        self.method = method
        self.allowed = list(allowed)
        kwargs.setdefault("messages", [])
        super().__init__(f"Method {method} not allowed. Allowed: {', '.join(allowed)}", **kwargs)


# =============================================================================
# CONTROLLER ERRORS
# =============================================================================


class ControllerError(SpryError):
    default_category = ErrorCategory.CONTROLLER


class ClassNotFoundError(ControllerError):
    response_code = 12

    def __init__(self, class_name: str, **kwargs: Any):
        self.class_name = class_name
        kwargs.setdefault("messages", [class_name])
        super().__init__(f"Controller class not found: {class_name}", **kwargs)
        self.context.controller = class_name


class MethodNotFoundError(ControllerError):
    response_code = 13

    def __init__(self, class_name: str, method: str, **kwargs: Any):
        self.class_name = class_name
        self.method = method
        kwargs.setdefault("messages", [f"{class_name}::{method}"])
        super().__init__(f"Controller method not found: {class_name}::{method}", **kwargs)
        self.context.controller = f"{class_name}::{method}"


class MethodNotCallableError(ControllerError):
    response_code = 15

    def __init__(self, target: str, **kwargs: Any):
        self.target = target
        kwargs.setdefault("data", target)
        kwargs.setdefault("messages", [])
        super().__init__(f"Controller is not callable: {target}", **kwargs)
        self.context.controller = target


class ControllerNotFoundError(ControllerError):
    response_code = 16

    def __init__(self, ref: Any = None, **kwargs: Any):
        self.ref = ref
        label = ref if isinstance(ref, str) else repr(ref)
        kwargs.setdefault("messages", [label])
        super().__init__(f"Controller not found: {label}", **kwargs)


# =============================================================================
# PARAMETER ERRORS
# =============================================================================


class ParamsError(SpryError):
    default_category = ErrorCategory.PARAMS


class MalformedParamsError(ParamsError):
    """Request payload is not a key/value structure."""

    response_code = 14

    def __init__(self, message: str = "Params are not in JSON format", **kwargs: Any):
        kwargs.setdefault("messages", [])
        super().__init__(message, **kwargs)


class ValidationFailedError(ParamsError):
    """One or more fields failed the route's parameter schema."""

    default_category = ErrorCategory.VALIDATION
    response_code = 20

    def __init__(self, errors: dict[str, list[str]], **kwargs: Any):
        self.errors = errors
        flat = [message for field_errors in errors.values() for message in field_errors]
        kwargs.setdefault("messages", flat)
        super().__init__(f"Validation failed for: {', '.join(errors)}", **kwargs)


# =============================================================================
# OUTPUT ERRORS
# =============================================================================


class OutputMalformedError(SpryError):
    """A controller wrote directly to stdout instead of returning data."""

    default_category = ErrorCategory.OUTPUT
    response_code = 10

    def __init__(self, echoed: str, **kwargs: Any):
        self.echoed = echoed
        kwargs.setdefault("messages", [])
        super().__init__("Controller wrote to stdout", **kwargs)


# =============================================================================
# PROVIDER ERRORS
# =============================================================================


class ProviderError(SpryError):
    default_category = ErrorCategory.PROVIDER


class DatabaseConnectError(ProviderError):
    response_code = 31


class DatabaseProviderMissingError(ProviderError):
    response_code = 33

    def __init__(self, message: str = "Database provider not configured", **kwargs: Any):
        kwargs.setdefault("messages", [])
        super().__init__(message, **kwargs)


class LogProviderMissingError(ProviderError):
    response_code = 40

    def __init__(self, message: str = "Log provider not found", **kwargs: Any):
        kwargs.setdefault("messages", [])
        super().__init__(message, **kwargs)


# =============================================================================
# WARNINGS
# =============================================================================


class SpryWarning(UserWarning):
    """Non-fatal configuration problem (code conflicts, unusable config)."""


__all__ = [
    "SpryWarning",
    "ErrorCategory",
    "ErrorContext",
    "SpryError",
    "ConfigError",
    "ConfigMissingError",
    "SaltMissingError",
    "ConfigMalformedError",
    "RoutingError",
    "RouteNotFoundError",
    "MethodNotAllowedError",
    "ControllerError",
    "ClassNotFoundError",
    "MethodNotFoundError",
    "MethodNotCallableError",
    "ControllerNotFoundError",
    "ParamsError",
    "MalformedParamsError",
    "ValidationFailedError",
    "OutputMalformedError",
    "ProviderError",
    "DatabaseConnectError",
    "DatabaseProviderMissingError",
    "LogProviderMissingError",
]
