"""Vision backends: each turns image bytes into the raw receipt JSON document."""

from __future__ import annotations

import base64
import json
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

from basesplit.core.errors import BackendUnavailable
from basesplit.core.logging import get_logger, log_event

if TYPE_CHECKING:
    from basesplit.core.config import Settings

logger = get_logger(__name__)

RECEIPT_PROMPT = """\
You are an OCR assistant specialized in restaurant and retail receipts. Extract line items,
prices and the total from the provided image and return strict JSON.

Constraints:
- Ignore tax, subtotal and tip lines in the items array. Only extract distinct purchasable items.
- If an item appears with a count (e.g. "2x Burger"), split it into separate entries if possible,
  or note the quantity in the description.
- All prices are numbers, not strings.
- Do not invent items that are not visible.

Output format (JSON only):
{
  "merchant": "Name of the place (or Unknown)",
  "date": "YYYY-MM-DD (or null)",
  "currency": "USD",
  "total_amount": 0.00,
  "subtotal": null,
  "tax": null,
  "tip": null,
  "items": [
    {"description": "Burger", "price": 15.00},
    {"description": "Fries", "price": 5.50}
  ]
}

Edge cases:
- If the image is blurry and unreadable, return: {"error": "IMAGE_UNREADABLE"}
- If the image is not a receipt, return: {"error": "NOT_A_RECEIPT"}
"""

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


class VisionBackend(ABC):
    name: str = "base"

    @abstractmethod
    def extract(self, image: bytes, *, mime_type: str = "image/jpeg") -> dict[str, Any]:
        """Return the backend's JSON document for ``image``."""


class OpenAIVisionBackend(VisionBackend):
    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        timeout_seconds: float = 60.0,
        max_tokens: int = 1000,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._model = model
        self._timeout = timeout_seconds
        self._max_tokens = max_tokens
        self._client = client

    def extract(self, image: bytes, *, mime_type: str = "image/jpeg") -> dict[str, Any]:
        if not self._api_key:
            raise BackendUnavailable("Vision API key is not configured", backend=self.name)

        encoded = base64.b64encode(image).decode("ascii")
        payload = {
            "model": self._model,
            "temperature": 0.1,
            "max_tokens": self._max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": RECEIPT_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                        }
                    ],
                },
            ],
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        url = self._base_url.rstrip("/") + "/chat/completions"
        raw = _post_json(self._client, url, payload, headers=headers, timeout=self._timeout)

        try:
            message = raw["choices"][0]["message"]
            content = message.get("content") if isinstance(message, dict) else None
        except (KeyError, IndexError, TypeError) as e:
            raise BackendUnavailable("Unexpected vision response shape", backend=self.name) from e
        if isinstance(message, dict) and message.get("refusal"):
            raise BackendUnavailable("Vision model refused the request", backend=self.name)
        return parse_json_object(content, backend=self.name)


class OllamaVisionBackend(VisionBackend):
    """A local multimodal model served over Ollama's chat API."""

    name = "ollama"

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "llava",
        timeout_seconds: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url
        self._model = model
        self._timeout = timeout_seconds
        self._client = client

    def extract(self, image: bytes, *, mime_type: str = "image/jpeg") -> dict[str, Any]:
        payload = {
            "model": self._model,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0.1},
            "messages": [
                {
                    "role": "user",
                    "content": RECEIPT_PROMPT,
                    "images": [base64.b64encode(image).decode("ascii")],
                }
            ],
        }
        url = self._base_url.rstrip("/") + "/api/chat"
        raw = _post_json(self._client, url, payload, headers={}, timeout=self._timeout)
        try:
            content = raw["message"]["content"]
        except (KeyError, TypeError) as e:
            raise BackendUnavailable("Unexpected vision response shape", backend=self.name) from e
        return parse_json_object(content, backend=self.name)


class StubVisionBackend(VisionBackend):
    """Deterministic backend for tests and offline runs."""

    name = "stub"

    DEFAULT_RESPONSE: dict[str, Any] = {
        "merchant": "Stub Diner",
        "date": "2026-01-15",
        "currency": "USD",
        "total_amount": None,
        "items": [
            {"description": "Burger", "price": 10.00},
            {"description": "Fries", "price": 5.50},
        ],
    }

    def __init__(self, response: dict[str, Any] | None = None) -> None:
        self._response = response if response is not None else self.DEFAULT_RESPONSE
        self.calls = 0

    def extract(self, image: bytes, *, mime_type: str = "image/jpeg") -> dict[str, Any]:
        self.calls += 1
        return json.loads(json.dumps(self._response))


def create_backend(config: Settings) -> VisionBackend:
    match config.vision_backend:
        case "openai":
            return OpenAIVisionBackend(
                api_key=config.openai_api_key,
                base_url=config.openai_base_url,
                model=config.openai_model,
                timeout_seconds=config.vision_timeout_seconds,
                max_tokens=config.vision_max_tokens,
            )
        case "ollama":
            return OllamaVisionBackend(
                base_url=config.ollama_base_url,
                model=config.ollama_model,
                timeout_seconds=config.vision_timeout_seconds,
            )
        case "stub":
            return StubVisionBackend()
        case _:
            raise ValueError(
                f"Unknown vision backend: {config.vision_backend!r} (choose openai, ollama or stub)"
            )


def parse_json_object(content: object, *, backend: str) -> dict[str, Any]:
    if not isinstance(content, str) or not content.strip():
        raise BackendUnavailable("Empty vision response", backend=backend)
    cleaned = _FENCE_RE.sub("", content.strip())
    try:
        obj = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise BackendUnavailable("Vision response is not JSON", backend=backend) from None
        try:
            obj = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise BackendUnavailable("Vision response is not JSON", backend=backend) from e
    if not isinstance(obj, dict):
        raise BackendUnavailable("Vision response is not a JSON object", backend=backend)
    return obj


def _post_json(
    client: httpx.Client | None,
    url: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str],
    timeout: float,
) -> dict[str, Any]:
    try:
        if client is not None:
            resp = client.post(url, json=payload, headers=headers, timeout=timeout)
        else:
            resp = httpx.post(
                url, json=payload, headers=headers, timeout=timeout, follow_redirects=True
            )
        resp.raise_for_status()
        raw = resp.json()
    except httpx.TimeoutException as e:
        log_event(logger, "vision.request.timeout", url=url, timeout_s=timeout)
        raise BackendUnavailable("Vision backend timed out", url=url) from e
    except httpx.HTTPStatusError as e:
        log_event(logger, "vision.request.failed", url=url, status=e.response.status_code)
        raise BackendUnavailable(
            "Vision backend returned an error", url=url, status=e.response.status_code
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        log_event(logger, "vision.request.failed", url=url, error_type=type(e).__name__)
        raise BackendUnavailable("Vision backend unreachable", url=url) from e
    if not isinstance(raw, dict):
        raise BackendUnavailable("Unexpected vision response shape", url=url)
    return raw
