"""Custom exception hierarchy for hookwire.

Provides precise error classification across the registry, the listener
pipeline, subscribers and the external collaborators, enabling targeted
error handling at wiring time and at the transport boundary.

Most exceptions also inherit the builtin a caller would naturally catch
(``TypeError`` for wiring mistakes, ``LookupError`` for registry misses)
so plain ``except TypeError`` keeps working.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, remote 5xx)
    PERMANENT = "permanent"          # Not worth retrying (bad wiring, bad input)
    INFRASTRUCTURE = "infrastructure"  # Missing config, unreachable services


class HookwireError(Exception):
    """Base exception for all hookwire errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "listeners.group").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(HookwireError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Registry exceptions
# ---------------------------------------------------------------------------

class RegistryLookupError(HookwireError, LookupError):
    """A context or global could not be resolved from the registry."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "registry", **context
        )


# ---------------------------------------------------------------------------
# Wiring / contract exceptions
# ---------------------------------------------------------------------------

class ListenerKindError(HookwireError, TypeError):
    """A listener (or group, or adapter) is not of the expected kind.

    Attributes:
        expected: Name of the kind that was required.
        actual: Name of the kind (or type) that was given.
    """

    def __init__(
        self,
        message: str = "",
        *,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            message, category=category, module=module or "listeners", **context
        )


class AbstractInstantiationError(HookwireError, TypeError):
    """An abstract base (Listener, ListenerGroup, Subscriber...) was instantiated."""

    def __init__(self, class_name: str, **context: Any) -> None:
        self.class_name = class_name
        super().__init__(
            f"You cannot instantiate the abstract class {class_name}!",
            module="capabilities",
            **context,
        )


class UnimplementedError(HookwireError, NotImplementedError):
    """An abstract contract method was invoked without being overridden.

    Attributes:
        class_name: The concrete class that forgot the override.
        method: The contract member that is missing.
    """

    def __init__(self, class_name: str, method: str, **context: Any) -> None:
        self.class_name = class_name
        self.method = method
        super().__init__(
            f"{class_name} must implement {method}!",
            module="listeners",
            **context,
        )


class MissingCorrelationKeyError(HookwireError, KeyError):
    """An interaction unit of work has no correlation key to dispatch on."""

    def __init__(self, key: str = "callback_id", **context: Any) -> None:
        self.key = key
        super().__init__(
            f"Unit of work is missing the '{key}' correlation key",
            module="listeners.interaction",
            **context,
        )


# ---------------------------------------------------------------------------
# Collaborator exceptions
# ---------------------------------------------------------------------------

class TransportError(HookwireError):
    """Error talking to the chat transport (Slack Web API / RTM).

    Attributes:
        method: API method that failed (e.g. "chat.postMessage").
    """

    def __init__(
        self,
        message: str = "",
        *,
        method: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.method = method
        super().__init__(
            message, category=category, module=module or "transport", **context
        )


class WebServerError(HookwireError):
    """Error in the HTTP hook server."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "web_server", **context
        )


class JenkinsError(HookwireError):
    """Error from the Jenkins REST API.

    Attributes:
        status: HTTP status code (if a response was received).
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.status = status
        super().__init__(
            message, category=category, module=module or "jenkins", **context
        )


class DatabaseError(HookwireError):
    """Error during database operations."""

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.operation = operation
        super().__init__(
            message, category=category, module=module or "database", **context
        )
