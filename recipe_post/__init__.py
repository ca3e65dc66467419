from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .editor import set_field
from .errors import (
    ConfigError,
    ExportError,
    GatewayError,
    MediaProcessingError,
    SchemaViolationError,
    TimeoutLikelyError,
    ValidationError,
)
from .media import ImagePayload, normalize_image
from .post_schema import PostContent, sanitize_multiline
from .session import RecipePostSession

__all__ = [
    "AppConfig",
    "ConfigError",
    "ExportError",
    "GatewayError",
    "ImagePayload",
    "MediaProcessingError",
    "PostContent",
    "RecipePostSession",
    "SchemaViolationError",
    "TimeoutLikelyError",
    "ValidationError",
    "config_sha256",
    "load_config",
    "normalize_image",
    "resolve_runtime_secrets",
    "sanitize_multiline",
    "set_field",
]
