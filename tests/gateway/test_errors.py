import json

from chatgate.gateway.errors import (
    ErrorKind,
    err_invalid_request,
    err_models_unavailable,
    err_provider_unavailable,
    err_unknown_provider,
    err_upstream_failure,
    error_response,
)


def _body(response):
    return json.loads(response.body)


def test_status_codes_per_kind():
    assert err_invalid_request("bad").status_code == 400
    assert err_unknown_provider("ghost:x", "ghost").status_code == 400
    assert err_provider_unavailable("p").status_code == 503
    assert err_upstream_failure("p").status_code == 500


def test_invalid_request_shape():
    response = error_response(err_invalid_request("Model is required"))
    assert response.status_code == 400
    assert _body(response) == {"error": "Model is required"}


def test_provider_unavailable_shape():
    exc = err_provider_unavailable("p", "timeout")
    assert exc.kind is ErrorKind.PROVIDER_UNAVAILABLE
    body = _body(error_response(exc))
    assert body["error"]["type"] == "service_unavailable"
    assert body["error"]["code"] == "provider_unavailable"
    assert body["error"]["message"] == "Provider 'p' is unavailable: timeout"


def test_models_unavailable_code():
    assert err_models_unavailable().code == "models_unavailable"


def test_upstream_failure_shape():
    body = _body(error_response(err_upstream_failure("p", "HTTP 500")))
    assert body["error"] == "Failed to process chat completion request"
    assert body["message"].endswith("HTTP 500")


def test_unexpected_exception_is_generic_500():
    response = error_response(ValueError("secret detail"))
    assert response.status_code == 500
    body = _body(response)
    assert body == {
        "error": "Internal server error",
        "message": "An unexpected error occurred",
    }
