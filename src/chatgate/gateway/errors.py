from __future__ import annotations

import enum
import logging
from typing import Any

from fastapi import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    INVALID_REQUEST = "invalid_request"
    UNKNOWN_PROVIDER = "unknown_provider"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    UPSTREAM_FAILURE = "upstream_failure"


_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.UNKNOWN_PROVIDER: 400,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.UPSTREAM_FAILURE: 500,
}

GENERIC_MESSAGE = "Internal server error"


def _payload(kind: ErrorKind, message: str, code: str | None) -> dict[str, Any]:
    if kind in (ErrorKind.INVALID_REQUEST, ErrorKind.UNKNOWN_PROVIDER):
        return {"error": message}
    if kind is ErrorKind.PROVIDER_UNAVAILABLE:
        return {
            "error": {
                "message": message,
                "type": "service_unavailable",
                "code": code or "provider_unavailable",
            }
        }
    return {
        "error": "Failed to process chat completion request",
        "message": message,
    }


class GatewayError(HTTPException):
    """Failure with a known kind; ``detail`` holds the wire body."""

    def __init__(self, kind: ErrorKind, message: str, code: str | None = None):
        self.kind = kind
        self.message = message
        self.code = code
        super().__init__(status_code=_STATUS[kind], detail=_payload(kind, message, code))


def err_invalid_request(message: str) -> GatewayError:
    return GatewayError(ErrorKind.INVALID_REQUEST, message)


def err_unknown_provider(model: str, provider_id: str | None = None) -> GatewayError:
    if provider_id:
        message = f"Unknown provider '{provider_id}' for model '{model}'"
    else:
        message = f"Model '{model}' is not of the form 'provider:model'"
    return GatewayError(ErrorKind.UNKNOWN_PROVIDER, message)


def err_provider_unavailable(
    provider_id: str, reason: str | None = None, code: str = "provider_unavailable"
) -> GatewayError:
    message = f"Provider '{provider_id}' is unavailable"
    if reason:
        message = f"{message}: {reason}"
    return GatewayError(ErrorKind.PROVIDER_UNAVAILABLE, message, code)


def err_models_unavailable() -> GatewayError:
    return GatewayError(
        ErrorKind.PROVIDER_UNAVAILABLE,
        "Failed to retrieve models",
        "models_unavailable",
    )


def err_upstream_failure(provider_id: str, reason: str | None = None) -> GatewayError:
    message = f"Provider '{provider_id}' failed to complete the request"
    if reason:
        message = f"{message}: {reason}"
    return GatewayError(ErrorKind.UPSTREAM_FAILURE, message)


def error_response(exc: BaseException) -> JSONResponse:
    """Map any failure to an OpenAI-style JSON error response."""

    if isinstance(exc, GatewayError):
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    logger.error("[errors] Unexpected failure: %r", exc)
    return JSONResponse(
        status_code=500,
        content={"error": GENERIC_MESSAGE, "message": "An unexpected error occurred"},
    )
