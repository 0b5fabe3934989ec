"""Domain errors rendered as ``{"error": ..., "message": ...}`` by main.py."""
from typing import Any, Dict, Optional


class SteelworksError(Exception):
    status_code: int = 500
    error: str = "INTERNAL_ERROR"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.extra)
        return body


class ValidationMissingError(SteelworksError):
    """A required request field is absent."""
    status_code = 400
    error = "VALIDATION_MISSING"


class NotFoundError(SteelworksError):
    status_code = 404
    error = "NOT_FOUND"


class MarginBelowFloorError(SteelworksError):
    """
    Margin below the policy floor without an explicit override.

    Recoverable: the caller resubmits with ``margin_override = true``.
    """
    status_code = 422
    error = "MARGIN_BELOW_FLOOR"

    def __init__(self, margin_percent, floor):
        super().__init__(
            f"Margin {margin_percent:g}% is below the {floor:g}% minimum. "
            f"Set margin_override to true to proceed.",
            extra={"margin_percent": float(margin_percent), "floor": floor},
        )
        self.margin_percent = margin_percent
        self.floor = floor


class InvalidValueError(SteelworksError):
    """A field is present but outside its allowed values."""
    status_code = 400
    error = "VALIDATION_INVALID"
