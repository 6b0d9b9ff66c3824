from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from .errors import err_invalid_request
from .models import CompletionRequest


def validate_request(body: Any) -> CompletionRequest:
    """Structural gate for a decoded completion body.

    Runs before any provider is touched. Message content is not inspected or
    normalized; unknown fields ride along as provider parameters.
    """

    if not isinstance(body, dict):
        raise err_invalid_request("Request body must be a JSON object")
    model = body.get("model")
    if not isinstance(model, str) or not model.strip():
        raise err_invalid_request("Model is required")
    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise err_invalid_request("Messages array is required and cannot be empty")
    for idx, message in enumerate(messages):
        if not isinstance(message, dict) or not isinstance(message.get("role"), str):
            raise err_invalid_request(f"messages[{idx}] must be an object with a 'role'")
    stream = body.get("stream", False)
    if stream is not None and not isinstance(stream, bool):
        raise err_invalid_request("'stream' must be a boolean")
    try:
        return CompletionRequest.model_validate(
            {**body, "stream": bool(stream)}
        )
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise err_invalid_request(
            f"Invalid field '{loc}': {first.get('msg', 'invalid value')}"
        ) from exc
