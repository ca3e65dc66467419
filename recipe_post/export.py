from __future__ import annotations

import json

import httpx

from .config_schema import WebhookConfig
from .errors import ExportError
from .post_schema import PostContent


def export_payload(record: PostContent) -> bytes:
    return json.dumps({"post_content": record.to_wire()}, ensure_ascii=False).encode("utf-8")


class WebhookExporter:
    """Posts an edited record to the spreadsheet webhook, once, without retries."""

    def __init__(self, cfg: WebhookConfig, *, client: httpx.Client | None = None) -> None:
        self._cfg = cfg
        self._client = client or httpx.Client(timeout=cfg.timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "WebhookExporter":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def export_record(self, record: PostContent) -> None:
        """
        Raise ExportError carrying status, reason and body on any non-2xx answer.

        A transport failure is reported with status 0.
        """
        try:
            response = self._client.post(
                self._cfg.url,
                content=export_payload(record),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ExportError(0, "Network error", str(e)) from e

        if not response.is_success:
            raise ExportError(response.status_code, response.reason_phrase, response.text)
