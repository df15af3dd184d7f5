"""Custom exception hierarchy for quarrydb.

All public errors inherit from QuarryError so callers can catch the base
class for any quarrydb-specific failure.

Errors fall into four families:

* build-time (:class:`QueryBuildError`, :class:`CompilationError`), raised
  while a query is being described or compiled, before any SQL is sent;
* execution (:class:`QueryExecutionError`, :class:`ConnectionClosedError`);
* configuration (:class:`ConfigurationError`);
* ORM logic (:class:`ModelError`).
"""
from __future__ import annotations

from typing import Any


class QuarryError(Exception):
    """Base exception for all quarrydb errors."""

    code: str = "QUARRY_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response for the boundary layer."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Build-time errors
# ---------------------------------------------------------------------------


class QueryBuildError(QuarryError):
    """Raised when the fluent builder receives an invalid clause description."""

    code = "QUERY_BUILD_ERROR"


class InvalidOperatorError(QueryBuildError):
    """Raised for an operator/value pair that cannot be compiled.

    Args:
        operator: The offending operator.
        value: The value it was combined with.
    """

    code = "INVALID_OPERATOR"

    def __init__(self, operator: Any, value: Any) -> None:
        super().__init__(
            "Illegal operator and value combination.",
            details={"operator": operator, "value": value},
        )
        self.operator = operator
        self.value = value


class InvalidOrderDirectionError(QueryBuildError):
    """Raised when ORDER BY receives a direction other than ASC / DESC."""

    code = "INVALID_ORDER_DIRECTION"

    def __init__(self, direction: Any) -> None:
        super().__init__(
            'Order direction must be "ASC" or "DESC".',
            details={"direction": direction},
        )
        self.direction = direction


class InvalidBindingTypeError(QueryBuildError):
    """Raised when a binding is added to an unknown clause group."""

    code = "INVALID_BINDING_TYPE"

    def __init__(self, group: str, allowed: list[str]) -> None:
        super().__init__(
            f"Invalid binding type: {group}.",
            details={"group": group, "allowed_groups": allowed},
        )
        self.group = group


class CompilationError(QuarryError):
    """Raised when a grammar cannot express the clause model as SQL.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    code = "COMPILATION_ERROR"

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message, details={"clause": clause} if clause else None)
        self.clause = clause


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------


class QueryExecutionError(QuarryError):
    """Raised when the driver fails to run a statement.

    The driver exception is always chained (``raise ... from exc``).

    Args:
        message: The driver's error message.
        statement: The SQL text that failed.
        bindings: The values bound to the statement, in placeholder order.
    """

    code = "QUERY_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        statement: str,
        bindings: list[Any] | None = None,
    ) -> None:
        self.statement = statement
        self.bindings: list[Any] = list(bindings or [])
        super().__init__(
            message,
            details={
                "statement": statement,
                "bindings": ", ".join(str(b) for b in self.bindings),
            },
        )

    def context(self) -> dict[str, Any]:
        """Return the ``{statement, bindings}`` context of the failure."""
        return dict(self.details)


class ConnectionClosedError(QuarryError):
    """Raised when a disconnected connection is used again."""

    code = "CONNECTION_CLOSED"

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Database connection [{name}] has been disconnected.",
            details={"connection": name},
        )


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(QuarryError):
    """Raised when database configuration is missing or unusable."""

    code = "CONFIGURATION_ERROR"


class ConnectionNotConfiguredError(ConfigurationError):
    """Raised when a named connection has no configuration entry."""

    code = "CONNECTION_NOT_CONFIGURED"

    def __init__(self, name: str, configured: list[str]) -> None:
        super().__init__(
            f"Database connection [{name}] not configured.",
            details={"connection": name, "configured": configured},
        )


class UnsupportedDriverError(ConfigurationError):
    """Raised when a connection names a driver with no registered class."""

    code = "UNSUPPORTED_DRIVER"

    def __init__(self, driver: str, registered: list[str]) -> None:
        super().__init__(
            f"Unsupported database driver [{driver}]. Registered drivers: {registered}.",
            details={"driver": driver, "registered": registered},
        )


# ---------------------------------------------------------------------------
# ORM errors
# ---------------------------------------------------------------------------


class ModelError(QuarryError):
    """Base class for Active Record misuse."""

    code = "MODEL_ERROR"


class MissingPrimaryKeyError(ModelError):
    """Raised when a model class without a primary key is deleted or looked up by key."""

    code = "MISSING_PRIMARY_KEY"

    def __init__(self, model: str) -> None:
        super().__init__(
            f"No primary key defined on model [{model}].",
            details={"model": model},
        )


class ModelNotFoundError(ModelError):
    """Raised by the ``*_or_fail`` lookups when no row matches."""

    code = "MODEL_NOT_FOUND"

    def __init__(self, model: str, ids: list[Any] | None = None) -> None:
        message = f"No query results for model [{model}]"
        if ids:
            message += " " + ", ".join(str(i) for i in ids)
        super().__init__(message + ".", details={"model": model, "ids": ids or []})
        self.ids = ids or []
