from __future__ import annotations

import re
from typing import Any, AsyncGenerator, Dict, List

from .config import GatewayConfig, ProviderSettings
from .models import ModelDescriptor
from .providers import CompletionResult, Provider, StreamDelta

_TOKEN = re.compile(r"\S+\s*|\s+")


def _last_user_text(messages: List[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") != "user":
            continue
        content = message.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = [
                str(part.get("text") or "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            ]
            return " ".join(p for p in parts if p)
        return "" if content is None else str(content)
    return ""


class EchoProvider(Provider):
    """In-process provider that answers with the last user message."""

    kind = "echo"

    def __init__(self, provider_id: str, models: List[str] | None = None, owned_by: str | None = None):
        super().__init__(provider_id, owned_by)
        self.models = list(models or ["echo"])

    @classmethod
    def from_settings(cls, settings: ProviderSettings, cfg: GatewayConfig) -> "EchoProvider":
        return cls(settings.id, settings.models, settings.owned_by)

    async def list_models(self) -> List[ModelDescriptor]:
        return [self.descriptor(name) for name in self.models]

    async def complete(self, model, messages, params) -> CompletionResult:
        return CompletionResult(content=_last_user_text(messages))

    async def stream(self, model, messages, params) -> AsyncGenerator[StreamDelta, None]:
        for token in _TOKEN.findall(_last_user_text(messages)):
            yield StreamDelta(content=token)
        yield StreamDelta(finish_reason="stop")
