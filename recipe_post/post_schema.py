from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import SchemaViolationError
from .prompts import REQUIRED_HASHTAGS


POST_SCHEMA_NAME = "recipe_post_content"

# Wire key -> attribute name, in schema order.
FIELD_ALIASES: dict[str, str] = {
    "Номер": "number",
    "Заголовок": "title",
    "Рецепт": "recipe",
    "Совет": "tip",
    "ДопИнфа": "nutrition",
    "Диеты": "diets",
    "Промпт": "image_prompt",
    "Хэштеги": "hashtags",
}

_FIELD_DESCRIPTIONS: dict[str, str] = {
    "Номер": "Номер рецепта из источника.",
    "Заголовок": "Название рецепта.",
    "Рецепт": "Готовый текст поста, включающий ингредиенты и шаги приготовления.",
    "Совет": "Совет или лайфхак по приготовлению.",
    "ДопИнфа": (
        "Рассчитанный КБЖУ на одну порцию. Обязательно должен содержать "
        "числовые значения, а не текст 'по запросу'."
    ),
    "Диеты": "Номера диет и медицинские показания.",
    "Промпт": "Промпт для генерации визуала для поста в инстаграм.",
    "Хэштеги": "Хэштеги для поста.",
}

MULTILINE_FIELDS = ("Рецепт", "Совет")

# NOTE: Hand-authored to stay within the JSON Schema subset accepted by
# Structured Outputs (strict mode needs additionalProperties=false and every
# property listed as required).
POST_CONTENT_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        key: {"type": "string", "description": desc}
        for key, desc in _FIELD_DESCRIPTIONS.items()
    },
    "required": list(FIELD_ALIASES),
}

POST_ENVELOPE_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {"post_content": POST_CONTENT_JSON_SCHEMA},
    "required": ["post_content"],
}

_BR_RE = re.compile(r"<[ \t]*br[ \t]*/?[ \t]*>", re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")
_HASHTAG_RE = re.compile(r"#\w+")
_DIET_TAG_RE = re.compile(r"^#диета\d+$", re.IGNORECASE)


def sanitize_multiline(text: str) -> str:
    """
    Turn `<br>` tags and literal backslash-n sequences into real newlines.

    Applying it twice gives the same result as applying it once.
    """
    out = _BR_RE.sub("\n", text or "")
    return out.replace("\\n", "\n")


class PostContent(BaseModel):
    """One generated Instagram post. JSON in and out uses the Russian keys."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    number: str = Field(alias="Номер")
    title: str = Field(alias="Заголовок")
    recipe: str = Field(alias="Рецепт")
    tip: str = Field(alias="Совет")
    nutrition: str = Field(alias="ДопИнфа")
    diets: str = Field(alias="Диеты")
    image_prompt: str = Field(alias="Промпт")
    hashtags: str = Field(alias="Хэштеги")

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


class GeneratedPostContent(PostContent):
    """PostContent as accepted from the model: every field filled, nutrition numeric."""

    @field_validator("*")
    @classmethod
    def _must_be_non_empty(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("nutrition")
    @classmethod
    def _nutrition_must_have_numbers(cls, v: str) -> str:
        if not _DIGIT_RE.search(v):
            raise ValueError("must contain numeric values")
        return v

    @field_validator("hashtags")
    @classmethod
    def _hashtags_must_include_project_tags(cls, v: str) -> str:
        tags = [t.casefold() for t in _HASHTAG_RE.findall(v)]
        missing = [t for t in REQUIRED_HASHTAGS if t.casefold() not in tags]
        if missing:
            raise ValueError(f"missing required hashtags: {' '.join(missing)}")
        if not any(_DIET_TAG_RE.match(t) for t in tags):
            raise ValueError("missing diet number hashtag (e.g. #диета5)")
        return v


class PostEnvelope(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    post_content: GeneratedPostContent


def describe_validation_error(err: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in item.get('loc', ()))}: {item.get('msg', 'invalid')}"
        for item in err.errors()
    )


def finalize_post(content: PostContent) -> PostContent:
    """
    Sanitize the multi-line fields and return a plain PostContent.

    The sanitized values are checked again, so a field that held only `<br>`
    tags raises SchemaViolationError instead of coming back blank.
    """
    data = content.to_wire()
    for key in MULTILINE_FIELDS:
        data[key] = sanitize_multiline(data[key])

    try:
        GeneratedPostContent.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaViolationError(
            f"AI response does not match the post schema: {describe_validation_error(e)}"
        ) from e
    return PostContent.model_validate(data)
