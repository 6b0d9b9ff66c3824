"""Provider capability interface and the startup-time provider registry.

A provider is opaque to the gateway: it can list the models it serves and
run a completion, either in one shot or as a stream of deltas. Concrete
adapters live in ``openai_provider``, ``ollama_provider`` and
``echo_provider``.
"""

from __future__ import annotations

import abc
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .config import GatewayConfig, ProviderSettings
from .models import ModelDescriptor, Usage

logger = logging.getLogger(__name__)

MODEL_SEPARATOR = ":"


class ProviderError(Exception):
    """Base class for failures raised by provider adapters."""


class ProviderUnavailableError(ProviderError):
    """The provider could not be reached or instantiated."""


class UpstreamError(ProviderError):
    """The provider was reached but failed or returned malformed data."""


@dataclass
class CompletionResult:
    content: str
    finish_reason: str = "stop"
    usage: Optional[Usage] = None


@dataclass
class StreamDelta:
    content: str = ""
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None


class Provider(abc.ABC):
    kind: str = "abstract"

    def __init__(self, provider_id: str, owned_by: str | None = None):
        self.id = provider_id
        self.owned_by = owned_by or provider_id

    def descriptor(self, native_model: str, created: int | None = None) -> ModelDescriptor:
        return ModelDescriptor(
            id=f"{self.id}{MODEL_SEPARATOR}{native_model}",
            created=int(created if created is not None else time.time()),
            owned_by=self.owned_by,
        )

    @abc.abstractmethod
    async def list_models(self) -> List[ModelDescriptor]: ...

    @abc.abstractmethod
    async def complete(
        self, model: str, messages: List[Dict[str, Any]], params: Dict[str, Any]
    ) -> CompletionResult: ...

    @abc.abstractmethod
    def stream(
        self, model: str, messages: List[Dict[str, Any]], params: Dict[str, Any]
    ) -> AsyncIterator[StreamDelta]: ...

    async def aclose(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


ProviderFactory = Callable[[ProviderSettings, GatewayConfig], Provider]


class ProviderRegistry:
    """Ordered, read-mostly set of providers keyed by id."""

    def __init__(self, providers: Optional[List[Provider]] = None):
        self._providers: Dict[str, Provider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        if not provider.id or MODEL_SEPARATOR in provider.id:
            raise ValueError(f"Invalid provider id {provider.id!r}")
        if provider.id in self._providers:
            raise ValueError(f"Provider '{provider.id}' already registered")
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> Optional[Provider]:
        return self._providers.get(provider_id)

    def providers(self) -> List[Provider]:
        return list(self._providers.values())

    def ids(self) -> List[str]:
        return list(self._providers)

    async def aclose(self) -> None:
        for provider in self.providers():
            try:
                await provider.aclose()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[registry] Failed to close provider '%s': %s", provider.id, exc)

    @classmethod
    def from_config(cls, cfg: GatewayConfig) -> "ProviderRegistry":
        factories = _factories()
        registry = cls()
        for settings in cfg.enabled_providers():
            factory = factories.get(settings.kind)
            if factory is None:
                logger.warning(
                    "[registry] Skipping provider '%s': unknown kind '%s' (known: %s)",
                    settings.id,
                    settings.kind,
                    ", ".join(sorted(factories)),
                )
                continue
            try:
                registry.register(factory(settings, cfg))
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "[registry] Failed to instantiate provider '%s': %s", settings.id, exc
                )
                continue
            logger.info("[registry] Registered %s provider '%s'", settings.kind, settings.id)
        return registry


def _factories() -> Dict[str, ProviderFactory]:
    from .echo_provider import EchoProvider
    from .ollama_provider import OllamaProvider
    from .openai_provider import OpenAICompatibleProvider

    return {
        "echo": EchoProvider.from_settings,
        "ollama": OllamaProvider.from_settings,
        "openai": OpenAICompatibleProvider.from_settings,
    }
