from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class DiscoveryError(Exception):
    """Base class for driver exceptions with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: Exception | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True)
class LocatorParseError(DiscoveryError):
    """Raised when a locator or combined target is not a parseable URI."""

    code: int = 1000
    message: str = "Invalid locator"


@dataclass(frozen=True)
class InvalidLocatorError(DiscoveryError):
    """Raised when a parsed locator carries a malformed port or numeric option."""

    code: int = 1001
    message: str = "Malformed locator value"


@dataclass(frozen=True)
class UnknownSchemeError(DiscoveryError):
    """Raised when the locator scheme names no supported registry."""

    code: int = 2000
    message: str = "Unknown scheme"


@dataclass(frozen=True)
class MissingMethodError(DiscoveryError):
    """Raised when no method path can be split off a combined target."""

    code: int = 3000
    message: str = "gRPC method part missing or empty"


@dataclass(frozen=True)
class BackendError(DiscoveryError):
    """Raised when a registry backend call fails."""

    code: int = 4000
    message: str = "Registry backend error"


@dataclass(frozen=True)
class DriverNotFoundError(DiscoveryError):
    """Raised when a driver name is not known to the registry."""

    code: int = 5000
    message: str = "Driver not found"


@dataclass(frozen=True)
class ResolveError(DiscoveryError):
    """Raised when a target cannot be resolved to any address."""

    code: int = 6000
    message: str = "Address resolution failed"
