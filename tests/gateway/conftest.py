from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from chatgate.gateway import app as app_module
from chatgate.gateway.echo_provider import EchoProvider
from chatgate.gateway.ids import CounterIdGenerator
from chatgate.gateway.orchestrator import CompletionOrchestrator
from chatgate.gateway.providers import (
    CompletionResult,
    Provider,
    ProviderRegistry,
    StreamDelta,
)


class ScriptedProvider(Provider):
    """Provider that replays canned deltas and can fail on demand."""

    kind = "scripted"

    def __init__(
        self,
        provider_id: str,
        models: Optional[List[str]] = None,
        deltas: Optional[List[StreamDelta]] = None,
        result: Optional[CompletionResult] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
    ):
        super().__init__(provider_id)
        self.models = list(models or ["m"])
        self.deltas = list(deltas or [])
        self.result = result or CompletionResult(content="ok")
        self.fail_after = fail_after
        self.error = error or RuntimeError("boom")
        self.list_error = list_error
        self.calls = []
        self.pulled = 0
        self.closed = False

    async def list_models(self):
        if self.list_error is not None:
            raise self.list_error
        return [self.descriptor(name, created=1700000000) for name in self.models]

    async def complete(self, model, messages, params):
        self.calls.append((model, messages, params))
        if self.fail_after == 0:
            raise self.error
        return self.result

    async def stream(self, model, messages, params):
        self.calls.append((model, messages, params))
        try:
            for idx, delta in enumerate(self.deltas):
                if self.fail_after is not None and idx >= self.fail_after:
                    raise self.error
                self.pulled += 1
                yield delta
            if self.fail_after is not None and self.fail_after >= len(self.deltas):
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def scripted():
    return ScriptedProvider


@pytest.fixture
def install(monkeypatch):
    """Swap the app's registry and use deterministic ids and timestamps."""

    def _install(*providers: Provider) -> ProviderRegistry:
        registry = ProviderRegistry(list(providers))
        monkeypatch.setattr(app_module, "_registry", registry)
        monkeypatch.setattr(
            app_module,
            "_orchestrator",
            CompletionOrchestrator(CounterIdGenerator(), clock=lambda: 1700000000.0),
        )
        return registry

    return _install


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def demo_registry(install):
    return install(EchoProvider("demo", ["echo"]))
