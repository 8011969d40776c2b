"""Error taxonomy for contract validation and drift monitoring."""


class ContractError(Exception):
    """Base class for every error raised by the contract engine."""

    code = "CONTRACT_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        """Error body in the shape the host application returns to clients."""
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            },
        }


class SchemaViolation(ContractError):
    """A value does not conform to its declared schema.

    ``context`` is the dotted/bracketed location of the failure,
    e.g. ``Response(200).items[3].title``.
    """

    code = "SCHEMA_VIOLATION"
    status_code = 400

    def __init__(self, context: str, reason: str):
        super().__init__(f"{context}: {reason}", {"context": context, "reason": reason})
        self.context = context
        self.reason = reason


class RouteUnresolved(ContractError):
    """No declared operation matches an observed exchange."""

    code = "ROUTE_UNRESOLVED"
    status_code = 404

    def __init__(self, method: str, path: str):
        super().__init__(
            f"No contract operation matches {method.upper()} {path}",
            {"method": method.upper(), "path": path},
        )
        self.method = method.upper()
        self.path = path


class ScanIoError(ContractError):
    """The client source tree could not be read."""

    code = "SCAN_IO_ERROR"

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot scan {path}: {reason}", {"path": path, "reason": reason})
        self.path = path
        self.reason = reason


class SpecInvalid(ContractError):
    """The contract document is missing required structure."""

    code = "SPEC_INVALID"

    def __init__(self, reason: str):
        super().__init__(f"Invalid contract document: {reason}", {"reason": reason})
        self.reason = reason
