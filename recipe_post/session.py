from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Literal, Protocol

from .config_schema import AppConfig, MediaConfig
from .editor import set_field
from .errors import ExportError, GatewayError, MediaProcessingError, ValidationError
from .event_log import EventLog
from .llm import RecipeModel
from .media import normalize_image
from .post_schema import PostContent

InputMode = Literal["text", "image"]
Status = Literal["idle", "in-flight", "success", "error"]

EMPTY_TEXT_MESSAGE = "Пожалуйста, введите текст рецепта."
EMPTY_EXTRACTED_MESSAGE = "Пожалуйста, загрузите изображение или дождитесь извлечения текста."
SERVER_TIMEOUT_MESSAGE = (
    "Время ожидания ответа от сервера истекло. Это может случиться со сложными рецептами. "
    "Пожалуйста, попробуйте еще раз."
)

ClockFn = Callable[[], float]


class Exporter(Protocol):
    def export_record(self, record: PostContent) -> None: ...


@dataclass
class RequestState:
    status: Status = "idle"
    message: str | None = None
    settled_at: float | None = None

    @property
    def in_flight(self) -> bool:
        return self.status == "in-flight"

    def start(self) -> None:
        self.status = "in-flight"
        self.message = None
        self.settled_at = None

    def succeed(self, now: float) -> None:
        self.status = "success"
        self.message = None
        self.settled_at = now

    def fail(self, message: str, now: float) -> None:
        self.status = "error"
        self.message = message
        self.settled_at = now

    def reset(self) -> None:
        self.status = "idle"
        self.message = None
        self.settled_at = None


@dataclass(frozen=True)
class SelectedImage:
    data: bytes
    mime_type: str


class RecipePostSession:
    """
    State machine behind the recipe-to-post screen.

    Holds the input mode, the pending input, the generated record and one
    RequestState per operation (extraction, generation, export). Gateway
    errors never escape: they land in `error` or `export.message`.
    """

    def __init__(
        self,
        model: RecipeModel,
        exporter: Exporter,
        *,
        media: MediaConfig | None = None,
        status_display_seconds: float = 3.0,
        clock: ClockFn | None = None,
        log: EventLog | None = None,
    ) -> None:
        self._model = model
        self._exporter = exporter
        self._media = media or MediaConfig()
        self._display_window = float(status_display_seconds)
        self._clock = clock or time.monotonic
        self._log = log or EventLog.null()

        self.input_mode: InputMode = "text"
        self.text = ""
        self.extracted_text = ""
        self.selected_image: SelectedImage | None = None
        self.record: PostContent | None = None
        self.error: str | None = None

        self.extraction = RequestState()
        self.generation = RequestState()
        self._export = RequestState()

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        model: RecipeModel,
        exporter: Exporter,
        *,
        clock: ClockFn | None = None,
        log: EventLog | None = None,
    ) -> "RecipePostSession":
        return cls(
            model,
            exporter,
            media=cfg.media,
            status_display_seconds=cfg.export.status_display_seconds,
            clock=clock,
            log=log,
        )

    @property
    def export(self) -> RequestState:
        # Settled export status falls back to idle once the display window has passed.
        state = self._export
        if state.status in ("success", "error") and state.settled_at is not None:
            if self._clock() - state.settled_at >= self._display_window:
                state.reset()
        return state

    @property
    def can_submit(self) -> bool:
        return not (self.generation.in_flight or self.extraction.in_flight)

    def switch_mode(self, mode: InputMode) -> None:
        if mode not in ("text", "image"):
            raise ValueError(f"Unknown input mode: {mode!r}")

        self.input_mode = mode
        self.error = None
        self.extracted_text = ""
        if mode == "text":
            self.selected_image = None
        else:
            self.text = ""

    def set_text(self, text: str) -> None:
        self.text = text or ""

    def set_extracted_text(self, text: str) -> None:
        self.extracted_text = text or ""

    def select_image(self, data: bytes, mime_type: str) -> bool:
        """
        Make this the one active image and extract its text.

        Switches to image mode first when needed. Returns True when text was
        extracted.
        """
        if self.extraction.in_flight:
            return False
        if self.input_mode != "image":
            self.switch_mode("image")

        self.selected_image = SelectedImage(data=data, mime_type=mime_type)
        self.extraction.start()
        self.error = None
        self.extracted_text = ""

        try:
            payload = normalize_image(data, mime_type, media=self._media)
        except MediaProcessingError as e:
            self.selected_image = None
            self._fail(self.extraction, str(e), event="image_rejected")
            return False

        try:
            text = self._model.extract_text(payload)
        except GatewayError as e:
            self._fail(self.extraction, str(e), event="extract_failed")
            return False

        self.extracted_text = text
        self.extraction.succeed(self._clock())
        self._log.info("extract_completed", chars=len(text))
        return True

    def _source_text(self) -> str:
        if self.input_mode == "text":
            if not self.text.strip():
                raise ValidationError(EMPTY_TEXT_MESSAGE)
            return self.text
        if not self.extracted_text.strip():
            raise ValidationError(EMPTY_EXTRACTED_MESSAGE)
        return self.extracted_text

    def submit(self) -> bool:
        """Generate a post from the active input. Returns True on success."""
        if not self.can_submit:
            return False

        try:
            source = self._source_text()
        except ValidationError as e:
            self.error = str(e)
            return False

        self.generation.start()
        self.error = None
        self.record = None
        self._export.reset()

        try:
            # Images were already turned into text by extraction.
            record = self._model.generate_post(source, [])
        except GatewayError as e:
            message = SERVER_TIMEOUT_MESSAGE if "504" in str(e) else str(e)
            self._fail(self.generation, message, event="generate_failed")
            return False

        self.record = record
        self.generation.succeed(self._clock())
        self._log.info("generate_completed", number=record.number)
        return True

    def edit_field(self, field: str, value: str) -> None:
        if self.record is None:
            return
        self.record = set_field(self.record, field, value)

    def send_to_sheet(self) -> bool:
        """Export the current record. Returns True on a 2xx answer."""
        if self.record is None or self._export.in_flight:
            return False

        self._export.start()
        try:
            self._exporter.export_record(self.record)
        except ExportError as e:
            self._export.fail(str(e), self._clock())
            self._log.warning("export_failed", status_code=e.status_code, message=str(e))
            return False

        self._export.succeed(self._clock())
        self._log.info("export_completed")
        return True

    def _fail(self, state: RequestState, message: str, *, event: str) -> None:
        state.fail(message, self._clock())
        self.error = message
        self._log.warning(event, message=message)
