from __future__ import annotations

import json
from typing import Any, AsyncIterable, AsyncIterator, Dict

from .models import CompletionChunk

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
DONE_FRAME = b"data: [DONE]\n\n"


def encode_frame(payload: Dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode()


async def encode_sse(chunks: AsyncIterable[CompletionChunk]) -> AsyncIterator[bytes]:
    """One ``data:`` frame per chunk, in arrival order, then the sentinel."""

    iterator = chunks.__aiter__()
    try:
        async for chunk in iterator:
            yield encode_frame(chunk.to_wire())
        yield DONE_FRAME
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
