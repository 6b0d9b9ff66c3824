from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from .config import GatewayConfig, ProviderSettings
from .models import ModelDescriptor, Usage
from .providers import (
    CompletionResult,
    Provider,
    ProviderUnavailableError,
    StreamDelta,
    UpstreamError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434"

# OpenAI request fields that map onto Ollama "options".
_OPTION_MAP = {
    "temperature": "temperature",
    "top_p": "top_p",
    "top_k": "top_k",
    "seed": "seed",
    "stop": "stop",
    "max_tokens": "num_predict",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
}


def _ollama_usage(obj: Dict[str, Any]) -> Optional[Usage]:
    prompt = obj.get("prompt_eval_count")
    completion = obj.get("eval_count")
    if prompt is None and completion is None:
        return None
    total = prompt + completion if prompt is not None and completion is not None else None
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _message_content(obj: Dict[str, Any]) -> str:
    message = obj.get("message")
    if not isinstance(message, dict):
        return ""
    return message.get("content") or ""


def convert_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten OpenAI content parts into Ollama's text + base64 images form."""

    prepared: List[Dict[str, Any]] = []
    for m in messages or []:
        role = m.get("role") if isinstance(m, dict) else None
        content = m.get("content") if isinstance(m, dict) else None
        msg: Dict[str, Any] = {"role": role or "user", "content": ""}
        images: List[str] = []
        if isinstance(content, str):
            msg["content"] = content
        elif isinstance(content, list):
            text_parts: List[str] = []
            for part in content:
                if not isinstance(part, dict):
                    continue
                ptype = part.get("type")
                if ptype == "text":
                    text_parts.append(str(part.get("text") or ""))
                elif ptype == "image_url":
                    url = (part.get("image_url") or {}).get("url") or ""
                    if url.startswith("data:image") and "," in url:
                        images.append(url.split(",", 1)[1])
                    elif url:
                        logger.warning("[ollama] Dropping non-inline image url for Ollama")
            msg["content"] = " ".join(t for t in text_parts if t).strip()
        elif content is not None:
            msg["content"] = str(content)
        if images:
            msg["images"] = images
        prepared.append(msg)
    return prepared


class OllamaProvider(Provider):
    """Adapter for a local Ollama server (``/api/tags`` and ``/api/chat``)."""

    kind = "ollama"

    def __init__(
        self,
        provider_id: str,
        base_url: str = DEFAULT_BASE_URL,
        models: List[str] | None = None,
        owned_by: str | None = None,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(provider_id, owned_by or "ollama")
        self.base_url = base_url.rstrip("/")
        self.models = list(models or [])
        self._http = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout_s, transport=transport
        )

    @classmethod
    def from_settings(cls, settings: ProviderSettings, cfg: GatewayConfig) -> "OllamaProvider":
        return cls(
            settings.id,
            base_url=settings.base_url or DEFAULT_BASE_URL,
            models=settings.models,
            owned_by=settings.owned_by,
            timeout_s=cfg.provider_timeout_ms / 1000,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def list_models(self) -> List[ModelDescriptor]:
        if self.models:
            return [self.descriptor(name) for name in self.models]
        try:
            resp = await self._http.get("/api/tags")
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(f"{self.id}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"{self.id}: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError(f"{self.id}: malformed /api/tags payload") from exc

        names: List[str] = []
        for model in payload.get("models") or []:
            name = model.get("name") or model.get("model")
            if name and str(name) not in names:
                names.append(str(name))
        return [self.descriptor(name) for name in names]

    def _payload(self, model, messages, params, stream: bool) -> Dict[str, Any]:
        options = dict(params.get("options") or {})
        for source, target in _OPTION_MAP.items():
            if params.get(source) is not None:
                options[target] = params[source]
        payload: Dict[str, Any] = {
            "model": model,
            "messages": convert_messages(messages),
            "stream": stream,
        }
        if options:
            payload["options"] = options
        for passthrough in ("format", "keep_alive", "tools"):
            if params.get(passthrough) is not None:
                payload[passthrough] = params[passthrough]
        return payload

    async def complete(self, model, messages, params) -> CompletionResult:
        try:
            resp = await self._http.post(
                "/api/chat", json=self._payload(model, messages, params, False)
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailableError(str(exc) or type(exc).__name__) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(str(exc) or type(exc).__name__) from exc
        if resp.status_code >= 400:
            raise UpstreamError(f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            obj = resp.json()
        except ValueError as exc:
            raise UpstreamError("malformed completion payload") from exc
        if not isinstance(obj, dict) or "message" not in obj:
            raise UpstreamError("completion payload has no message")
        content = _message_content(obj)
        return CompletionResult(
            content=str(content),
            finish_reason=obj.get("done_reason") or "stop",
            usage=_ollama_usage(obj),
        )

    async def stream(self, model, messages, params) -> AsyncGenerator[StreamDelta, None]:
        payload = self._payload(model, messages, params, True)
        try:
            async with self._http.stream("POST", "/api/chat", json=payload) as resp:
                if resp.status_code >= 400:
                    data = await resp.aread()
                    raise UpstreamError(
                        f"HTTP {resp.status_code}: {data.decode(errors='ignore')[:200]}"
                    )
                # Ollama streams newline-delimited JSON objects.
                async for line in resp.aiter_lines():
                    raw = line.strip()
                    if not raw:
                        continue
                    if raw.startswith("data:"):
                        raw = raw[5:].strip()
                    try:
                        obj = json.loads(raw)
                    except json.JSONDecodeError as exc:
                        raise UpstreamError(f"malformed stream line: {raw[:80]!r}") from exc
                    if not isinstance(obj, dict):
                        raise UpstreamError(f"unexpected stream line: {raw[:80]!r}")
                    if obj.get("error"):
                        raise UpstreamError(str(obj["error"]))
                    content = _message_content(obj)
                    if obj.get("done"):
                        if content:
                            yield StreamDelta(content=content)
                        yield StreamDelta(
                            finish_reason=obj.get("done_reason") or "stop",
                            usage=_ollama_usage(obj),
                        )
                        return
                    if content:
                        yield StreamDelta(content=content)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailableError(str(exc) or type(exc).__name__) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(str(exc) or type(exc).__name__) from exc
