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

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def parse_usage(raw: Any) -> Optional[Usage]:
    """Return provider-reported usage, or None when nothing was reported."""

    if not isinstance(raw, dict):
        return None
    usage = Usage(
        prompt_tokens=raw.get("prompt_tokens"),
        completion_tokens=raw.get("completion_tokens"),
        total_tokens=raw.get("total_tokens"),
    )
    if usage.prompt_tokens is None and usage.completion_tokens is None and usage.total_tokens is None:
        return None
    return usage


class OpenAICompatibleProvider(Provider):
    """Adapter for any upstream speaking the OpenAI chat-completions API."""

    kind = "openai"

    def __init__(
        self,
        provider_id: str,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        models: List[str] | None = None,
        owned_by: str | None = None,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(provider_id, owned_by)
        self.base_url = base_url.rstrip("/")
        self.models = list(models or [])
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout_s, transport=transport
        )

    @classmethod
    def from_settings(cls, settings: ProviderSettings, cfg: GatewayConfig) -> "OpenAICompatibleProvider":
        return cls(
            settings.id,
            base_url=settings.base_url or DEFAULT_BASE_URL,
            api_key=settings.api_key,
            models=settings.models,
            owned_by=settings.owned_by,
            timeout_s=cfg.provider_timeout_ms / 1000,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def list_models(self) -> List[ModelDescriptor]:
        # A curated model list in config wins over upstream discovery.
        if self.models:
            return [self.descriptor(name) for name in self.models]
        try:
            resp = await self.client.get("/models")
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"{self.id}: {exc}") from exc
        if resp.status_code >= 400:
            raise UpstreamError(f"{self.id}: HTTP {resp.status_code} from /models")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"{self.id}: malformed /models payload") from exc
        out: List[ModelDescriptor] = []
        for item in payload.get("data") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            created = item.get("created")
            out.append(
                self.descriptor(
                    str(item["id"]),
                    created=created if isinstance(created, int) else None,
                )
            )
        return out

    def _payload(self, model, messages, params, stream: bool) -> Dict[str, Any]:
        payload = dict(params)
        payload.update({"model": model, "messages": messages, "stream": stream})
        return payload

    async def complete(self, model, messages, params) -> CompletionResult:
        try:
            resp = await self.client.post(
                "/chat/completions", json=self._payload(model, messages, params, False)
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailableError(str(exc) or type(exc).__name__) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(str(exc) or type(exc).__name__) from exc
        if resp.status_code >= 400:
            logger.warning(
                "[openai] %s returned HTTP %s for model %s", self.id, resp.status_code, model
            )
            raise UpstreamError(f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            obj = resp.json()
            choice = (obj.get("choices") or [])[0]
            message = choice.get("message") or {}
        except (ValueError, IndexError, AttributeError) as exc:
            raise UpstreamError("malformed completion payload") from exc
        content = message.get("content")
        return CompletionResult(
            content="" if content is None else str(content),
            finish_reason=choice.get("finish_reason") or "stop",
            usage=parse_usage(obj.get("usage")),
        )

    async def stream(self, model, messages, params) -> AsyncGenerator[StreamDelta, None]:
        payload = self._payload(model, messages, params, True)
        try:
            async with self.client.stream("POST", "/chat/completions", json=payload) as resp:
                if resp.status_code >= 400:
                    data = await resp.aread()
                    raise UpstreamError(
                        f"HTTP {resp.status_code}: {data.decode(errors='ignore')[:200]}"
                    )
                async for line in resp.aiter_lines():
                    if not line or not line.startswith("data:"):
                        continue
                    raw = line[5:].strip()
                    if raw == "[DONE]":
                        return
                    try:
                        obj = json.loads(raw)
                    except json.JSONDecodeError as exc:
                        raise UpstreamError(f"malformed stream frame: {raw[:80]!r}") from exc
                    delta = self._delta_from_chunk(obj)
                    if delta is not None:
                        yield delta
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderUnavailableError(str(exc) or type(exc).__name__) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _delta_from_chunk(obj: Dict[str, Any]) -> Optional[StreamDelta]:
        if not isinstance(obj, dict):
            return None
        err = obj.get("error")
        if err:
            message = err.get("message") if isinstance(err, dict) else err
            raise UpstreamError(str(message or err))
        usage = parse_usage(obj.get("usage"))
        choices = obj.get("choices") or []
        if not choices:
            return StreamDelta(usage=usage) if usage else None
        choice = choices[0] or {}
        delta = choice.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        finish_reason = choice.get("finish_reason")
        if not content and not finish_reason and usage is None:
            return None
        return StreamDelta(
            content=content or "", finish_reason=finish_reason, usage=usage
        )
