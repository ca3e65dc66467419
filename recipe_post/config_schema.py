from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .post_schema import POST_ENVELOPE_JSON_SCHEMA
from .prompts import EXTRACTION_INSTRUCTION, GENERATION_TEMPLATE, SYSTEM_PROMPT

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_WEBHOOK_URL = "https://hook.eu2.make.com/jo52w67and9w23pahdk86vdbiaqtzfcd"


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _validate_http_url(value: str) -> str:
    url = (value or "").strip()
    if not url.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return url


PositiveInt = Annotated[int, Field(ge=1)]
PositiveFloat = Annotated[float, Field(gt=0)]
NonNegativeFloat = Annotated[float, Field(ge=0)]


class GenAIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key_env: str = "OPENAI_API_KEY"
    model_generation: str = "gpt-5-mini"
    model_extraction: str = "gpt-5-mini"
    max_output_tokens: PositiveInt = 4000

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("model_generation", "model_extraction")
    @classmethod
    def _model_must_be_set(cls, v: str) -> str:
        name = (v or "").strip()
        if not name:
            raise ValueError("must be a non-empty model name")
        return name


class PromptsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    system_prompt: str = SYSTEM_PROMPT
    extraction_instruction: str = EXTRACTION_INSTRUCTION
    generation_template: str = GENERATION_TEMPLATE
    response_schema: dict[str, Any] = Field(default_factory=lambda: dict(POST_ENVELOPE_JSON_SCHEMA))

    @field_validator("system_prompt", "extraction_instruction")
    @classmethod
    def _must_be_non_empty(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("must be non-empty")
        return v

    @field_validator("generation_template")
    @classmethod
    def _template_needs_text_slot(cls, v: str) -> str:
        if "{text}" not in (v or ""):
            raise ValueError("must contain a {text} placeholder")
        return v


class WebhookConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = DEFAULT_WEBHOOK_URL
    timeout_seconds: PositiveFloat | None = 30.0

    @field_validator("url")
    @classmethod
    def _url_must_be_http(cls, v: str) -> str:
        return _validate_http_url(v)


class MediaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_dimension: PositiveInt = 1024
    jpeg_quality: int = Field(90, ge=1, le=95)
    allowed_mime_types: list[str] = Field(default_factory=lambda: ["image/png", "image/jpeg"])

    @field_validator("allowed_mime_types")
    @classmethod
    def _normalize_mime_types(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for item in v:
            mime = (item or "").strip().lower()
            if mime and mime not in out:
                out.append(mime)
        if not out:
            raise ValueError("must contain at least one MIME type")
        return out


class GatewayConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "http://127.0.0.1:8888"
    # None means no client-side timeout.
    timeout_seconds: PositiveFloat | None = None

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        return _validate_http_url(v).rstrip("/")


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = "127.0.0.1"
    port: int = Field(8888, ge=1, le=65535)


class ExportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    status_display_seconds: NonNegativeFloat = 3.0


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    genai: GenAIConfig = Field(default_factory=GenAIConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
