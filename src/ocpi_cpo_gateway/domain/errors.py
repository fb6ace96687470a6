"""Domain exceptions for gateway operations."""


class GatewayError(Exception):
    """Base class for gateway errors."""


class RouteConflictError(GatewayError):
    """Raised when a route template overlaps an already registered one."""


class CommandHandlerConflictError(GatewayError):
    """Raised when a command kind already has a registered handler."""


class CommandParseError(GatewayError):
    """Raised when a command body cannot be parsed."""

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(f"Could not parse the given '{kind}' command JSON: {detail}")
        self.kind = kind
        self.detail = detail


class ResourceNotFoundError(GatewayError):
    """Raised when a registry record cannot be found."""


class TokenDowngradeError(GatewayError):
    """Raised when a token update is older than the stored token."""


class TokenPatchError(GatewayError):
    """Raised when a token patch produces an invalid token."""


class PartnerClientError(RuntimeError):
    """Raised when outbound partner calls fail."""


__all__ = [
    "CommandHandlerConflictError",
    "CommandParseError",
    "GatewayError",
    "PartnerClientError",
    "ResourceNotFoundError",
    "RouteConflictError",
    "TokenDowngradeError",
    "TokenPatchError",
]
