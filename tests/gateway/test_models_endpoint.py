from chatgate.gateway import app as app_module
from chatgate.gateway.providers import ProviderUnavailableError


def test_models_lists_every_provider(client, install, scripted):
    install(scripted("alpha", models=["a1", "a2"]), scripted("beta", models=["b1"]))
    r = client.get("/v1/models")
    assert r.status_code == 200
    data = r.json()
    assert data["object"] == "list"
    assert [m["id"] for m in data["data"]] == ["alpha:a1", "alpha:a2", "beta:b1"]
    assert data["data"][0] == {
        "id": "alpha:a1",
        "object": "model",
        "created": 1700000000,
        "owned_by": "alpha",
    }


def test_models_listing_is_idempotent(client, install, scripted):
    install(scripted("alpha", models=["a1"]), scripted("beta", models=["b1"]))
    first = client.get("/models").json()
    second = client.get("/models").json()
    assert first == second


def test_listed_ids_resolve_to_their_provider(client, install, scripted):
    alpha = scripted("alpha", models=["a1"])
    beta = scripted("beta", models=["b1"])
    install(alpha, beta)
    for model in client.get("/v1/models").json()["data"]:
        r = client.post(
            "/v1/chat/completions",
            json={"model": model["id"], "messages": [{"role": "user", "content": "x"}]},
        )
        assert r.status_code == 200, r.text
    assert [c[0] for c in alpha.calls] == ["a1"]
    assert [c[0] for c in beta.calls] == ["b1"]


def test_failing_provider_is_skipped(client, install, scripted):
    install(
        scripted("down", list_error=ProviderUnavailableError("offline")),
        scripted("up", models=["m"]),
    )
    r = client.get("/v1/models")
    assert r.status_code == 200
    assert [m["id"] for m in r.json()["data"]] == ["up:m"]


def test_empty_registry_yields_empty_list(client, install):
    install()
    r = client.get("/v1/models")
    assert r.status_code == 200
    assert r.json() == {"object": "list", "data": []}


def test_registry_failure_returns_503(client, monkeypatch):
    class BrokenRegistry:
        def providers(self):
            raise RuntimeError("registry gone")

    monkeypatch.setattr(app_module, "_registry", BrokenRegistry())
    r = client.get("/v1/models")
    assert r.status_code == 503
    assert r.json() == {
        "error": {
            "message": "Failed to retrieve models",
            "type": "service_unavailable",
            "code": "models_unavailable",
        }
    }
