from types import SimpleNamespace

import httpx
import openai
import pytest

from studio import config
from studio.errors import AuthError, ConfigurationError, EmptyImageResponse, RateLimitError, UpstreamError, UpstreamTimeout
from studio.openai_client import OpenAIClient, build_image_request, mask_key, translate_error

IMAGES_URL = "https://api.openai.com/v1/images/generations"


def status_error(cls, status, headers=None, body=None, message="upstream failure"):
    request = httpx.Request("POST", IMAGES_URL)
    response = httpx.Response(status, headers=headers or {}, request=request)
    return cls(message, response=response, body=body)


class FakeImages:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def generate(self, **request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def image_response(*urls):
    return SimpleNamespace(data=[SimpleNamespace(url=url) for url in urls])


def make_client(outcomes):
    images = FakeImages(outcomes)
    sleeps = []
    sdk = SimpleNamespace(images=images)
    return OpenAIClient(api_key="sk-test", client=sdk, sleep=sleeps.append), images, sleeps


def test_build_image_request_example():
    request = build_image_request("a red bicycle", size="1024x1024", style="vivid")
    assert request == {
        "model": "dall-e-3",
        "prompt": "a red bicycle",
        "n": 1,
        "size": "1024x1024",
        "style": "vivid",
        "quality": "hd",
    }


def test_build_image_request_truncates_long_prompt():
    request = build_image_request("  " + "x" * 5000 + "  ")
    assert len(request["prompt"]) == 4000


def test_build_image_request_dalle2_options():
    request = build_image_request("cats", model="dall-e-2", size="256x256", n=10)
    assert request == {"model": "dall-e-2", "prompt": "cats", "n": 4, "size": "256x256"}
    assert build_image_request("cats", n=3)["n"] == 1


def test_generate_image_passes_url_through():
    client, images, _ = make_client([image_response("https://img/1.png?sig=a%20b")])
    assert client.generate_image("a red bicycle", size="1024x1024", style="vivid") == ["https://img/1.png?sig=a%20b"]
    assert images.requests[0]["prompt"] == "a red bicycle"


@pytest.mark.parametrize("response", [
    SimpleNamespace(data=[]),
    SimpleNamespace(data=None),
    SimpleNamespace(data=[SimpleNamespace(url=None)]),
])
def test_generate_image_without_url(response):
    client, _, _ = make_client([response])
    with pytest.raises(EmptyImageResponse):
        client.generate_image("a red bicycle")


def test_rate_limit_retried_at_most_twice():
    limited = status_error(openai.RateLimitError, 429, headers={"retry-after": "2"})
    client, images, sleeps = make_client([limited])
    with pytest.raises(RateLimitError) as excinfo:
        client.generate_image("a red bicycle")
    assert len(images.requests) == 3
    assert sleeps == [2.0, 2.0]
    assert excinfo.value.status_code == 429


def test_rate_limit_recovers_on_retry():
    limited = status_error(openai.RateLimitError, 429)
    client, images, sleeps = make_client([limited, image_response("https://img/ok.png")])
    assert client.generate_image("a red bicycle") == ["https://img/ok.png"]
    assert len(images.requests) == 2
    assert sleeps == [1.0]


def test_retry_after_is_capped():
    limited = status_error(openai.RateLimitError, 429, headers={"retry-after": "3600"})
    client, _, sleeps = make_client([limited, image_response("https://img/ok.png")])
    client.generate_image("a red bicycle")
    assert sleeps == [20.0]


def test_auth_error_is_not_retried():
    denied = status_error(openai.AuthenticationError, 401, body={"message": "Incorrect API key provided"})
    client, images, sleeps = make_client([denied])
    with pytest.raises(AuthError) as excinfo:
        client.generate_image("a red bicycle")
    assert len(images.requests) == 1
    assert sleeps == []
    assert "Incorrect API key provided" in excinfo.value.message


def test_translate_error_variants():
    request = httpx.Request("POST", IMAGES_URL)
    assert isinstance(translate_error(openai.APITimeoutError(request=request)), UpstreamTimeout)
    bad = translate_error(status_error(openai.BadRequestError, 400, body={"message": "Your prompt was rejected"}))
    assert isinstance(bad, UpstreamError)
    assert bad.status_code == 500
    assert bad.details == {"upstream_status": 400, "message": "Your prompt was rejected"}
    assert bad.message == "OpenAI API error: Your prompt was rejected"
    other = ValueError("not from the SDK")
    assert translate_error(other) is other


@pytest.mark.parametrize("api_key", [None, "", "your_api_key_here"])
def test_missing_api_key_is_configuration_error(api_key, monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    client = OpenAIClient(api_key=api_key)
    with pytest.raises(ConfigurationError):
        client.chat([{"role": "user", "content": "Hi"}])


def test_chat_returns_completion_text():
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hi back"))])

    sdk = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client = OpenAIClient(api_key="sk-test", client=sdk)
    messages = [{"role": "user", "content": "Hi"}]
    assert client.chat(messages) == "Hi back"
    assert calls[0]["messages"] == messages
    assert calls[0]["model"] == "gpt-4"


def test_mask_key():
    assert mask_key(None) == "Not found"
    assert mask_key("sk-abcdefghijklmnop") == "sk-ab...mnop"


def test_client_reads_config_at_construction(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-from-config")
    monkeypatch.setattr(config, "OPENAI_BASE_URL", "https://proxy.example.com/v1")
    monkeypatch.setattr(config, "UPSTREAM_TIMEOUT", 5.0)
    monkeypatch.setattr(config, "RATE_LIMIT_RETRIES", 0)
    client = OpenAIClient()
    assert client.api_key == "sk-from-config"
    assert client.base_url == "https://proxy.example.com/v1"
    assert client.timeout == 5.0
    assert client.max_retries == 0
    assert OpenAIClient(api_key="sk-explicit", max_retries=1).api_key == "sk-explicit"
