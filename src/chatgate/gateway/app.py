from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from .aggregator import ModelListAggregator
from .config import GatewayConfig
from .errors import (
    GatewayError,
    err_invalid_request,
    err_models_unavailable,
    error_response,
)
from .ids import make_id_generator
from .logging_utils import RequestLog
from .orchestrator import CompletionOrchestrator, CompletionStream, stream_log_record
from .providers import ProviderRegistry
from .resolver import resolve_model
from .sse import SSE_HEADERS, SSE_MEDIA_TYPE, encode_sse
from .validation import validate_request

logger = logging.getLogger(__name__)


_cfg = GatewayConfig.load()
_registry = ProviderRegistry.from_config(_cfg)
_orchestrator = CompletionOrchestrator(make_id_generator(_cfg.id_strategy))
_request_log = RequestLog(_cfg.log_path, _cfg.max_log_bytes, enabled=_cfg.log_requests)


app = FastAPI(title="chatgate", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cfg.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

router = APIRouter()


async def _stream_body(stream: CompletionStream) -> AsyncIterator[bytes]:
    try:
        async for frame in encode_sse(stream):
            yield frame
    finally:
        _request_log.log(stream_log_record(stream))


@router.post("/chat/completions")
async def chat_completions(req: Request):
    try:
        body = await req.json()
    except ValueError:
        return error_response(err_invalid_request("Request body must be valid JSON"))

    model = body.get("model") if isinstance(body, dict) else None
    try:
        request = validate_request(body)
        logger.info(
            "[app] Chat completion request: model=%s messages=%d stream=%s",
            request.model,
            len(request.messages),
            request.stream,
        )
        target = resolve_model(request.model, _registry)
        if request.stream:
            stream = await _orchestrator.open_stream(
                request, target, is_disconnected=req.is_disconnected
            )
            return StreamingResponse(
                _stream_body(stream), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS
            )
        response = await _orchestrator.complete(request, target)
    except GatewayError as exc:
        logger.warning("[app] Chat completion rejected (%s): %s", exc.kind.value, exc.message)
        _request_log.log({"model": model, "status": exc.status_code, "error": exc.kind.value})
        return error_response(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("[app] Unexpected error in chat completions")
        _request_log.log({"model": model, "status": 500, "error": "internal"})
        return error_response(exc)

    _request_log.log(
        {
            "id": response.id,
            "model": response.model,
            "provider": target.provider.id,
            "stream": False,
            "status": 200,
        }
    )
    return JSONResponse(content=response.to_wire())


@router.get("/models")
async def list_models_api():
    try:
        listing = await ModelListAggregator(_registry).list_models()
    except GatewayError as exc:
        return error_response(exc)
    except Exception:  # noqa: BLE001
        logger.exception("[app] Error fetching models")
        return error_response(err_models_unavailable())
    return JSONResponse(content=listing.model_dump())


app.include_router(router)
app.include_router(router, prefix="/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__, "providers": _registry.ids()}


@app.get("/v1")
async def api_info():
    return {
        "name": "chatgate",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "models": "GET /v1/models",
            "chat": "POST /v1/chat/completions",
        },
    }


@app.on_event("shutdown")
async def _shutdown():  # pragma: no cover
    await _registry.aclose()


def main():  # pragma: no cover
    import uvicorn

    uvicorn.run(app, host=_cfg.host, port=_cfg.port)


if __name__ == "__main__":  # pragma: no cover
    main()
