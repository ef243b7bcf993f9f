"""
Thin adapter around the OpenAI SDK for chat completions and image generation.

One place for auth, option defaults, rate-limit retries and error
translation. Upstream failures leave this module as ``studio.errors``
subclasses so handlers never look at message text.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

import openai
from openai import OpenAI

from studio import config
from studio.errors import (
    AuthError,
    ConfigurationError,
    EmptyImageResponse,
    RateLimitError,
    UpstreamError,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_KEYS = {"", "your_api_key_here", "your_openai_api_key_here"}


def mask_key(api_key: Optional[str]) -> str:
    if not api_key:
        return "Not found"
    if len(api_key) <= 9:
        return "***"
    return f"{api_key[:5]}...{api_key[-4:]}"


def build_image_request(
    prompt: str,
    model: str = config.DEFAULT_IMAGE_MODEL,
    size: str = config.DEFAULT_IMAGE_SIZE,
    quality: str = config.DEFAULT_IMAGE_QUALITY,
    style: str = config.DEFAULT_IMAGE_STYLE,
    n: int = 1,
) -> dict:
    """Build the images.generate keyword arguments.

    The prompt is trimmed and truncated to the upstream ceiling rather than
    rejected. ``quality`` and ``style`` are dall-e-3 only options, and
    dall-e-3 accepts a single image per request.
    """
    request = {
        "model": model,
        "prompt": prompt.strip()[:config.MAX_PROMPT_LENGTH],
        "n": 1 if model == "dall-e-3" else max(1, min(int(n), config.MAX_IMAGES_PER_REQUEST)),
        "size": size,
    }
    if model == "dall-e-3":
        request["style"] = style
        request["quality"] = quality
    return request


def _upstream_message(exc: Exception) -> str:
    # The SDK stores the "error" object of the payload on .body when present
    body = getattr(exc, "body", None)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return getattr(exc, "message", None) or str(exc)


def _retry_after(exc: "openai.APIStatusError") -> float:
    response = getattr(exc, "response", None)
    header = response.headers.get("retry-after") if response is not None else None
    try:
        delay = float(header) if header is not None else config.DEFAULT_RETRY_DELAY
    except ValueError:
        delay = config.DEFAULT_RETRY_DELAY
    return max(0.0, min(delay, config.MAX_RETRY_DELAY))


def translate_error(exc: Exception) -> Exception:
    """Map an SDK exception to the matching tagged error."""
    message = _upstream_message(exc)
    if isinstance(exc, openai.AuthenticationError):
        return AuthError(f"OpenAI authentication failed: {message}", details=message)
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(f"OpenAI rate limit reached: {message}", retry_after=_retry_after(exc), details=message)
    if isinstance(exc, openai.APITimeoutError):
        return UpstreamTimeout("OpenAI request timed out", details=message)
    if isinstance(exc, openai.APIStatusError):
        return UpstreamError(
            f"OpenAI API error: {message}",
            details={"upstream_status": exc.status_code, "message": message},
        )
    if isinstance(exc, openai.APIError):
        return UpstreamError(f"OpenAI API error: {message}", details=message)
    return exc


class OpenAIClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        client=None,
    ):
        # None falls back to the current config values
        self.api_key = config.OPENAI_API_KEY if api_key is None else api_key
        self.base_url = config.OPENAI_BASE_URL if base_url is None else base_url
        self.timeout = config.UPSTREAM_TIMEOUT if timeout is None else timeout
        self.max_retries = config.RATE_LIMIT_RETRIES if max_retries is None else max_retries
        self.sleep = sleep
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key or self.api_key in PLACEHOLDER_KEYS:
                raise ConfigurationError(
                    "OpenAI API key is not configured.",
                    details="Set OPENAI_API_KEY in the environment or .env file.",
                )
            logger.info(f"Initializing OpenAI client: key={mask_key(self.api_key)}, base_url={self.base_url}")
            # Rate-limit retries are handled by _with_retries
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _with_retries(self, fn, *args, **kwargs):
        attempt = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except openai.OpenAIError as e:
                err = translate_error(e)
                if err is e:
                    raise
                if not isinstance(err, RateLimitError) or attempt >= self.max_retries:
                    raise err from e
                attempt += 1
                logger.warning(
                    f"Rate limited by upstream, retry {attempt}/{self.max_retries} in {err.retry_after}s"
                )
                self.sleep(err.retry_after)

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = config.CHAT_MODEL,
        max_tokens: int = config.CHAT_MAX_TOKENS,
        temperature: float = config.CHAT_TEMPERATURE,
    ) -> str:
        client = self.client
        completion = self._with_retries(
            client.chat.completions.create,
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    def generate_image(self, prompt: str, **options) -> List[str]:
        """Generate images and return their upstream-hosted URLs.

        Raises:
            EmptyImageResponse: upstream returned no data or no URL.
        """
        client = self.client
        request = build_image_request(prompt, **options)
        logger.info(
            f"Image request: model={request['model']}, size={request['size']}, n={request['n']}, "
            f"prompt={request['prompt'][:100]}"
        )
        start = time.monotonic()
        response = self._with_retries(client.images.generate, **request)
        logger.info(f"Image response received in {int((time.monotonic() - start) * 1000)}ms")

        data = getattr(response, "data", None) or []
        urls = [item.url for item in data if getattr(item, "url", None)]
        if not data:
            raise EmptyImageResponse("OpenAI returned no image data.")
        if not urls:
            raise EmptyImageResponse("OpenAI returned no image URL.")
        return urls
