"""Error codes and exceptions for the game API."""
from enum import Enum

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes returned by the game API."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_PICK = "INVALID_PICK"
    INVALID_SETTINGS = "INVALID_SETTINGS"
    PRIZES_DEPLETED = "PRIZES_DEPLETED"
    SPIN_UNAVAILABLE = "SPIN_UNAVAILABLE"
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    SETTINGS_UNAVAILABLE = "SETTINGS_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_PICK: 400,
    ErrorCode.INVALID_SETTINGS: 422,
    ErrorCode.PRIZES_DEPLETED: 409,
    ErrorCode.SPIN_UNAVAILABLE: 409,
    ErrorCode.ROUND_IN_PROGRESS: 409,
    ErrorCode.SETTINGS_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Recoverable means the same request may succeed later without client changes
ERROR_RECOVERABLE: dict[ErrorCode, bool] = {
    ErrorCode.INVALID_REQUEST: False,
    ErrorCode.INVALID_PICK: False,
    ErrorCode.INVALID_SETTINGS: False,
    ErrorCode.PRIZES_DEPLETED: True,
    ErrorCode.SPIN_UNAVAILABLE: True,
    ErrorCode.ROUND_IN_PROGRESS: True,
    ErrorCode.SETTINGS_UNAVAILABLE: True,
    ErrorCode.INTERNAL_ERROR: True,
}


class ErrorBody(BaseModel):
    """Error body shape."""

    code: str
    message: str
    recoverable: bool


class ErrorResponse(BaseModel):
    """Full error response."""

    error: ErrorBody


class GameError(Exception):
    """Base game error that maps to an API error response."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or f"Error: {code.value}"
        self.status_code = ERROR_HTTP_STATUS[code]
        self.recoverable = ERROR_RECOVERABLE[code]
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """Convert to JSONResponse."""
        return JSONResponse(
            status_code=self.status_code,
            content=ErrorResponse(
                error=ErrorBody(
                    code=self.code.value,
                    message=self.message,
                    recoverable=self.recoverable,
                )
            ).model_dump(),
        )
