from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from .config_schema import GenAIConfig, PromptsConfig
from .errors import GatewayError, SchemaViolationError
from .media import ImagePayload
from .post_schema import (
    POST_SCHEMA_NAME,
    PostContent,
    PostEnvelope,
    describe_validation_error,
    finalize_post,
)


class _ResponsesAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _OpenAIClient(Protocol):
    responses: _ResponsesAPI


class RecipeModel(Protocol):
    """What the endpoints and the CLI need from a generative model."""

    def extract_text(self, image: ImagePayload) -> str: ...

    def generate_post(self, text: str, images: Sequence[ImagePayload] = ()) -> PostContent: ...


@dataclass(frozen=True)
class CallMetadata:
    model: str
    total_tokens: int | None


def _image_part(image: ImagePayload) -> dict[str, Any]:
    return {"type": "input_image", "image_url": image.to_data_uri()}


def _text_part(text: str) -> dict[str, Any]:
    return {"type": "input_text", "text": text}


def _extract_output_text(response: Any) -> str:
    direct = getattr(response, "output_text", None) or ""
    if isinstance(direct, str) and direct.strip():
        return direct.strip()

    output = getattr(response, "output", None) or []
    for item in output:
        content = getattr(item, "content", None) or []
        for part in content:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()

    raise GatewayError("OpenAI response did not include output text")


def _extract_verbatim_text(response: Any) -> str:
    """Extraction output as-is; empty text is a valid answer for a blank page."""
    direct = getattr(response, "output_text", None)
    if isinstance(direct, str) and direct:
        return direct

    output = getattr(response, "output", None) or []
    for item in output:
        content = getattr(item, "content", None) or []
        for part in content:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text:
                return text

    if isinstance(direct, str):
        return direct
    raise GatewayError("OpenAI response did not include output text")


def _extract_total_tokens(response: Any) -> int | None:
    usage = getattr(response, "usage", None)
    if usage is None and isinstance(response, dict):
        usage = response.get("usage")

    if usage is None:
        return None

    val: Any
    if isinstance(usage, dict):
        val = usage.get("total_tokens")
    else:
        val = getattr(usage, "total_tokens", None)

    if val is None:
        return None

    try:
        n = int(val)
        return n if n >= 0 else None
    except (TypeError, ValueError):
        return None


def parse_post_output(raw: str) -> PostContent:
    """
    Validate raw model output into a sanitized PostContent.

    The output must be a JSON object with a `post_content` object holding the
    eight non-empty fields; anything else raises SchemaViolationError.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SchemaViolationError(f"AI response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("post_content"), dict):
        raise SchemaViolationError("Invalid JSON structure in AI response.")

    try:
        envelope = PostEnvelope.model_validate(parsed)
    except PydanticValidationError as e:
        raise SchemaViolationError(
            f"AI response does not match the post schema: {describe_validation_error(e)}"
        ) from e

    return finalize_post(envelope.post_content)


class OpenAIRecipeModel:
    """
    OpenAI wrapper for the two model calls: verbatim text extraction from a
    photographed page, and recipe-to-post generation with Structured Outputs.

    SDK-level retries are disabled; a failed call is reported once and the
    user decides whether to try again.
    """

    def __init__(
        self,
        api_key: str,
        *,
        genai_cfg: GenAIConfig,
        prompts: PromptsConfig,
        client: _OpenAIClient | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = genai_cfg
        self._prompts = prompts
        self._client: _OpenAIClient = client or OpenAI(api_key=key, max_retries=0)

    def _create(self, *, model: str, **kwargs: Any) -> Any:
        try:
            return self._client.responses.create(model=model, **kwargs)
        except Exception as e:
            raise GatewayError(f"OpenAI call failed ({model}): {e}") from e

    def extract_text_with_metadata(self, image: ImagePayload) -> tuple[str, CallMetadata]:
        model = self._cfg.model_extraction
        response = self._create(
            model=model,
            input=[
                {
                    "role": "user",
                    "content": [
                        _text_part(self._prompts.extraction_instruction),
                        _image_part(image),
                    ],
                }
            ],
            max_output_tokens=self._cfg.max_output_tokens,
        )
        text = _extract_verbatim_text(response)
        return text, CallMetadata(model=model, total_tokens=_extract_total_tokens(response))

    def generate_post_with_metadata(
        self, text: str, images: Sequence[ImagePayload] = ()
    ) -> tuple[PostContent, CallMetadata]:
        model = self._cfg.model_generation
        parts = [_image_part(img) for img in images]
        parts.append(_text_part(self._prompts.generation_template.replace("{text}", text or "")))

        response = self._create(
            model=model,
            instructions=self._prompts.system_prompt,
            input=[{"role": "user", "content": parts}],
            text={
                "format": {
                    "type": "json_schema",
                    "name": POST_SCHEMA_NAME,
                    "strict": True,
                    "schema": self._prompts.response_schema,
                }
            },
            max_output_tokens=self._cfg.max_output_tokens,
        )
        post = parse_post_output(_extract_output_text(response))
        return post, CallMetadata(model=model, total_tokens=_extract_total_tokens(response))

    def extract_text(self, image: ImagePayload) -> str:
        text, _ = self.extract_text_with_metadata(image)
        return text

    def generate_post(self, text: str, images: Sequence[ImagePayload] = ()) -> PostContent:
        post, _ = self.generate_post_with_metadata(text, images)
        return post


def extract_text_logged(model: RecipeModel, image: ImagePayload) -> tuple[str, CallMetadata | None]:
    """Extract text, with call metadata when the model reports it."""
    if isinstance(model, OpenAIRecipeModel):
        return model.extract_text_with_metadata(image)
    return model.extract_text(image), None


def generate_post_logged(
    model: RecipeModel, text: str, images: Sequence[ImagePayload] = ()
) -> tuple[PostContent, CallMetadata | None]:
    """Generate a post, with call metadata when the model reports it."""
    if isinstance(model, OpenAIRecipeModel):
        return model.generate_post_with_metadata(text, images)
    return model.generate_post(text, images), None


def metadata_fields(meta: CallMetadata | None) -> dict[str, Any]:
    if meta is None:
        return {}
    return {"model": meta.model, "total_tokens": meta.total_tokens}
