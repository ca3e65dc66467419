from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Sequence

from .llm import parse_post_output
from .media import ImagePayload
from .post_schema import PostContent

_NUMBER_RE = re.compile(r"(?:№|No\.?|#)\s*(\d+)", re.IGNORECASE)

_OFFLINE_EXTRACTED_TEXT = (
    "Рецепт №7. Овсяная каша с яблоком\n"
    "Овсяные хлопья — 50 г\n"
    "Молоко 1,5% — 200 мл\n"
    "Яблоко — 1 шт.\n"
    "Сварить хлопья в молоке, добавить тёртое яблоко."
)


def _recipe_number(text: str) -> str:
    m = _NUMBER_RE.search(text or "")
    return m.group(1) if m else "1"


def _first_line(text: str) -> str:
    for line in (text or "").splitlines():
        line = line.strip()
        if line:
            return line[:80]
    return "Рецепт"


def _offline_output(text: str) -> dict[str, Any]:
    number = _recipe_number(text)
    # Mixed separators; parse_post_output normalizes them.
    return {
        "post_content": {
            "Номер": number,
            "Заголовок": _first_line(text),
            "Рецепт": (
                "Ингредиенты:<br>по списку из источника\\n"
                "Шаг 1. Подготовьте продукты.\\n"
                "Шаг 2. Приготовьте основу.<br/>"
                "Шаг 3. Подавайте тёплым.\\n"
                "Сохраните рецепт, чтобы не потерять!"
            ),
            "Совет": "Готовьте небольшими порциями.<br>Так блюдо останется свежим.",
            "ДопИнфа": "КБЖУ на порцию: 250 ккал, Б 10 г, Ж 6 г, У 38 г",
            "Диеты": "диеты: 5; «для лёгкого рациона»",
            "Промпт": (
                "Формат 1080×1350 (4:5), минимализм, дневной свет, уютная домашняя кухня, "
                "блюдо крупным планом, название и подстрока на изображении."
            ),
            "Хэштеги": f"#ВкусноПростоПолезно #щадящеепитание #вкуснополезно #диета5 #рецепт{number}",
        }
    }


@dataclass
class OfflineRecipeModel:
    """
    Deterministic, schema-valid model stub for `--offline` runs.

    Takes the recipe number from a `№12`-style marker in the text and fills
    the remaining fields with fixed content.
    """

    extracted_text: str = _OFFLINE_EXTRACTED_TEXT

    def extract_text(self, image: ImagePayload) -> str:
        _ = image
        return self.extracted_text

    def generate_post(self, text: str, images: Sequence[ImagePayload] = ()) -> PostContent:
        _ = images
        raw = json.dumps(_offline_output(text), ensure_ascii=False)
        return parse_post_output(raw)
