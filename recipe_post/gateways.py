from __future__ import annotations

import json
from typing import Any, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from .config_schema import GatewayConfig
from .errors import GatewayError, SchemaViolationError, TimeoutLikelyError
from .media import ImagePayload
from .post_schema import GeneratedPostContent, PostContent, describe_validation_error, finalize_post

EXTRACT_PATH = "/api/extract-text-from-image"
GENERATE_PATH = "/api/generate-post"

TIMEOUT_MESSAGE = (
    "The server returned an empty response; the request possibly timed out. "
    "Please try again."
)


def raise_for_endpoint_error(response: httpx.Response, *, fallback: str) -> None:
    """
    Turn a non-2xx endpoint response into the richest error available.

    Preference: the JSON `error` field, then the raw body, then a likely-timeout
    error when the body is empty.
    """
    if response.is_success:
        return

    body = response.text or ""
    if not body.strip():
        raise TimeoutLikelyError(f"{TIMEOUT_MESSAGE} (HTTP {response.status_code})")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise GatewayError(f"{fallback} (HTTP {response.status_code}): {body}") from None

    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, str) and err.strip():
            raise GatewayError(err)

    raise GatewayError(f"{fallback} (HTTP {response.status_code})")


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise SchemaViolationError(f"Endpoint returned invalid JSON: {e}") from e


class HttpRecipeGateway:
    """
    Client for the two recipe endpoints served by `recipe_post.server`.

    Each call is a single blocking POST; nothing is retried.
    """

    def __init__(self, cfg: GatewayConfig, *, client: httpx.Client | None = None) -> None:
        self._cfg = cfg
        self._client = client or httpx.Client(timeout=cfg.timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpRecipeGateway":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        url = f"{self._cfg.base_url}{path}"
        try:
            return self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise TimeoutLikelyError(f"{TIMEOUT_MESSAGE} ({e})") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Request to {url} failed: {e}") from e

    def extract_text(self, image: ImagePayload) -> str:
        response = self._post(EXTRACT_PATH, {"image": image.data})
        raise_for_endpoint_error(response, fallback="Failed to extract text from image.")

        data = _json_body(response)
        text = data.get("extractedText") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise SchemaViolationError("Endpoint response has no extractedText string")
        return text

    def generate_post(self, text: str, images: Sequence[ImagePayload] = ()) -> PostContent:
        payload = {"text": text, "images": [img.to_wire() for img in images]}
        response = self._post(GENERATE_PATH, payload)
        raise_for_endpoint_error(response, fallback="Failed to generate post.")

        data = _json_body(response)
        try:
            post = GeneratedPostContent.model_validate(data)
        except PydanticValidationError as e:
            raise SchemaViolationError(f"Endpoint returned an invalid post: {describe_validation_error(e)}") from e
        return finalize_post(post)
