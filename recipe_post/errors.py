from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration or a required secret is missing or invalid."""


class ValidationError(RuntimeError):
    """Raised when required user input is empty; no network call is made."""


class MediaProcessingError(RuntimeError):
    """Raised when an image cannot be decoded, resized or re-encoded."""


class GatewayError(RuntimeError):
    """Raised when an AI call or one of the HTTP endpoints fails."""


class SchemaViolationError(GatewayError):
    """Raised when the model output does not match the post schema."""


class TimeoutLikelyError(GatewayError):
    """Raised when an endpoint fails with an empty body, which usually means a timeout."""


class ExportError(RuntimeError):
    """Raised when the spreadsheet webhook answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, body: str) -> None:
        self.status_code = int(status_code)
        self.reason = reason or ""
        self.body = body or ""
        super().__init__(f"Ошибка сервера: {self.status_code} {self.reason}. {self.body}".rstrip())
