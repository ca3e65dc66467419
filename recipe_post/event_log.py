from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class EventLog:
    """
    JSONL event log shared by the HTTP server and the CLI.

    Each line is one JSON object: ts, level, event, session_id, optional
    request_id and a free-form data mapping. A log without a path discards
    every record.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        overwrite: bool = False,
        session_id: str | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False

    @classmethod
    def open(cls, path: str | Path, *, overwrite: bool = False) -> "EventLog":
        log = cls(path, overwrite=overwrite)
        log._ensure_open()
        return log

    @classmethod
    def null(cls) -> "EventLog":
        return cls(None)

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "EventLog":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def info(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("INFO", event, request_id=request_id, **data)

    def warning(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("WARN", event, request_id=request_id, **data)

    def error(self, event: str, *, request_id: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, request_id=request_id, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        request_id: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": truncate(str(exc), limit=2000),
            "traceback": truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, request_id=request_id, error=err, **data)

    def log(self, level: str, event: str, *, request_id: str | None = None, **data: Any) -> None:
        if self._path is None:
            return

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": (level or "").strip().upper() or "INFO",
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }

        rid = (request_id or "").strip()
        if rid:
            record["request_id"] = rid

        if data:
            record["data"] = data

        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None or self._path is None:
            return

        with self._lock:
            if self._fp is not None:
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"

            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()
