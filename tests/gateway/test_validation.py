import pytest

from chatgate.gateway.errors import ErrorKind, GatewayError
from chatgate.gateway.validation import validate_request

MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.mark.parametrize(
    "body, message",
    [
        ({"messages": MESSAGES}, "Model is required"),
        ({"model": "", "messages": MESSAGES}, "Model is required"),
        ({"model": "   ", "messages": MESSAGES}, "Model is required"),
        ({"model": 5, "messages": MESSAGES}, "Model is required"),
        ({"model": "p:m"}, "Messages array is required and cannot be empty"),
        ({"model": "p:m", "messages": []}, "Messages array is required and cannot be empty"),
        ({"model": "p:m", "messages": "hi"}, "Messages array is required and cannot be empty"),
    ],
)
def test_structural_failures(body, message):
    with pytest.raises(GatewayError) as info:
        validate_request(body)
    assert info.value.kind is ErrorKind.INVALID_REQUEST
    assert info.value.status_code == 400
    assert info.value.detail == {"error": message}


def test_non_object_body():
    with pytest.raises(GatewayError) as info:
        validate_request(["model"])
    assert info.value.kind is ErrorKind.INVALID_REQUEST


def test_message_without_role():
    with pytest.raises(GatewayError) as info:
        validate_request({"model": "p:m", "messages": [{"content": "hi"}]})
    assert "messages[0]" in info.value.message


def test_non_boolean_stream():
    with pytest.raises(GatewayError):
        validate_request({"model": "p:m", "messages": MESSAGES, "stream": "yes"})


def test_valid_request_keeps_extras_and_content():
    content = [{"type": "text", "text": "look"}]
    request = validate_request(
        {
            "model": "p:m",
            "messages": [{"role": "user", "content": content, "name": "bob"}],
            "stream": True,
            "temperature": 0.5,
        }
    )
    assert request.model == "p:m"
    assert request.stream is True
    assert request.provider_params() == {"temperature": 0.5}
    dumped = request.message_dicts()[0]
    assert dumped["content"] == content
    assert dumped["name"] == "bob"


def test_stream_defaults_to_false():
    request = validate_request({"model": "p:m", "messages": MESSAGES})
    assert request.stream is False
