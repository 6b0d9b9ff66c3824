from __future__ import annotations

import asyncio
import logging
from typing import List

from .errors import err_models_unavailable
from .models import ModelDescriptor, ModelList
from .providers import Provider, ProviderRegistry

logger = logging.getLogger(__name__)


class ModelListAggregator:
    """Merge every provider's models into one OpenAI-style listing."""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def _models_for(self, provider: Provider) -> List[ModelDescriptor]:
        return await provider.list_models()

    async def list_models(self) -> ModelList:
        try:
            providers = self.registry.providers()
        except Exception as exc:  # noqa: BLE001
            logger.error("[models] Provider registry unavailable: %s", exc)
            raise err_models_unavailable() from exc

        results = await asyncio.gather(
            *(self._models_for(p) for p in providers), return_exceptions=True
        )
        data: List[ModelDescriptor] = []
        seen: set[str] = set()
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "[models] Provider '%s' failed to list models: %s", provider.id, result
                )
                continue
            for descriptor in result or []:
                if descriptor.id in seen:
                    continue
                seen.add(descriptor.id)
                data.append(descriptor)

        if not data:
            logger.warning("[models] No models available from %d provider(s)", len(providers))
        else:
            logger.info("[models] Returning %d model(s)", len(data))
        return ModelList(data=data)
