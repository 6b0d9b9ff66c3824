import asyncio

import pytest

from chatgate.gateway.aggregator import ModelListAggregator
from chatgate.gateway.errors import ErrorKind, GatewayError
from chatgate.gateway.providers import ProviderRegistry, UpstreamError


def test_aggregates_in_registration_order(scripted):
    registry = ProviderRegistry(
        [scripted("b", models=["x", "y"]), scripted("a", models=["z"])]
    )
    listing = asyncio.run(ModelListAggregator(registry).list_models())
    assert [m.id for m in listing.data] == ["b:x", "b:y", "a:z"]
    assert {m.owned_by for m in listing.data} == {"a", "b"}


def test_duplicate_ids_are_dropped(scripted):
    registry = ProviderRegistry([scripted("p", models=["m", "m", "n"])])
    listing = asyncio.run(ModelListAggregator(registry).list_models())
    assert [m.id for m in listing.data] == ["p:m", "p:n"]


def test_failures_are_logged_and_skipped(scripted, caplog):
    registry = ProviderRegistry(
        [scripted("bad", list_error=UpstreamError("HTTP 500")), scripted("ok")]
    )
    with caplog.at_level("WARNING"):
        listing = asyncio.run(ModelListAggregator(registry).list_models())
    assert [m.id for m in listing.data] == ["ok:m"]
    assert "bad" in caplog.text


def test_all_failing_gives_empty_listing(scripted):
    registry = ProviderRegistry([scripted("bad", list_error=UpstreamError("nope"))])
    listing = asyncio.run(ModelListAggregator(registry).list_models())
    assert listing.data == []


def test_registry_failure_is_provider_unavailable():
    class BrokenRegistry:
        def providers(self):
            raise RuntimeError("gone")

    with pytest.raises(GatewayError) as info:
        asyncio.run(ModelListAggregator(BrokenRegistry()).list_models())
    assert info.value.kind is ErrorKind.PROVIDER_UNAVAILABLE
    assert info.value.code == "models_unavailable"
