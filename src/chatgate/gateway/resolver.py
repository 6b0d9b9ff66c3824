from __future__ import annotations

from dataclasses import dataclass

from .errors import err_unknown_provider
from .providers import MODEL_SEPARATOR, Provider, ProviderRegistry


@dataclass(frozen=True)
class ResolvedTarget:
    provider: Provider
    model: str  # native model id understood by the provider

    @property
    def composite_id(self) -> str:
        return f"{self.provider.id}{MODEL_SEPARATOR}{self.model}"


def split_model_id(model: str) -> tuple[str, str]:
    """Split on the first separator; native ids may contain ':' themselves."""

    provider_id, sep, native = model.partition(MODEL_SEPARATOR)
    if not sep:
        return "", model
    return provider_id, native


def resolve_model(model: str, registry: ProviderRegistry) -> ResolvedTarget:
    provider_id, native = split_model_id(model)
    if not provider_id or not native:
        raise err_unknown_provider(model)
    # Looked up on every call: the registered set is the source of truth.
    provider = registry.get(provider_id)
    if provider is None:
        raise err_unknown_provider(model, provider_id)
    return ResolvedTarget(provider=provider, model=native)
