from __future__ import annotations

import io
import json
import unittest
from typing import Sequence

import httpx
from PIL import Image

from recipe_post.config_schema import AppConfig, GatewayConfig, WebhookConfig
from recipe_post.errors import ExportError, GatewayError, TimeoutLikelyError
from recipe_post.export import WebhookExporter
from recipe_post.gateways import HttpRecipeGateway
from recipe_post.media import ImagePayload
from recipe_post.offline import OfflineRecipeModel
from recipe_post.post_schema import PostContent
from recipe_post.server import create_app
from recipe_post.session import (
    EMPTY_EXTRACTED_MESSAGE,
    EMPTY_TEXT_MESSAGE,
    SERVER_TIMEOUT_MESSAGE,
    RecipePostSession,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _CountingModel(OfflineRecipeModel):
    def __init__(self, *, fail_with: Exception | None = None) -> None:
        super().__init__()
        self.fail_with = fail_with
        self.extract_calls = 0
        self.generate_calls: list[str] = []

    def extract_text(self, image: ImagePayload) -> str:
        self.extract_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return super().extract_text(image)

    def generate_post(self, text: str, images: Sequence[ImagePayload] = ()) -> PostContent:
        self.generate_calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        return super().generate_post(text, images)


class _RecordingExporter:
    def __init__(self, error: ExportError | None = None) -> None:
        self.error = error
        self.records: list[PostContent] = []

    def export_record(self, record: PostContent) -> None:
        self.records.append(record)
        if self.error is not None:
            raise self.error


def _png(size: tuple[int, int] = (1600, 1200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (250, 250, 250)).save(buf, format="PNG")
    return buf.getvalue()


def _session(model=None, exporter=None, clock=None) -> RecipePostSession:
    return RecipePostSession(
        model or _CountingModel(),
        exporter or _RecordingExporter(),
        status_display_seconds=3.0,
        clock=clock or _Clock(),
    )


class TestInputModes(unittest.TestCase):
    def test_switch_to_text_clears_image_state(self) -> None:
        s = _session()
        self.assertTrue(s.select_image(_png(), "image/png"))
        self.assertTrue(s.extracted_text)

        s.switch_mode("text")

        self.assertEqual(s.input_mode, "text")
        self.assertIsNone(s.selected_image)
        self.assertEqual(s.extracted_text, "")
        self.assertIsNone(s.error)

    def test_switch_to_image_clears_text(self) -> None:
        s = _session()
        s.set_text("Рецепт №1")
        s.error = "old"
        s.switch_mode("image")
        self.assertEqual(s.text, "")
        self.assertIsNone(s.error)

    def test_new_image_starts_without_residual_text(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.select_image(_png(), "image/png")
        s.switch_mode("text")
        s.switch_mode("image")
        self.assertEqual(s.extracted_text, "")

        model.fail_with = GatewayError("vision failed")
        self.assertFalse(s.select_image(_png(), "image/png"))
        self.assertEqual(s.extracted_text, "")
        self.assertEqual(s.extraction.status, "error")

    def test_unknown_mode(self) -> None:
        with self.assertRaises(ValueError):
            _session().switch_mode("video")  # type: ignore[arg-type]


class TestImageSelection(unittest.TestCase):
    def test_bad_image_is_discarded_without_gateway_call(self) -> None:
        model = _CountingModel()
        s = _session(model)

        self.assertFalse(s.select_image(b"garbage", "image/jpeg"))

        self.assertIsNone(s.selected_image)
        self.assertEqual(s.extraction.status, "error")
        self.assertTrue(s.error)
        self.assertEqual(model.extract_calls, 0)

    def test_unsupported_type_is_discarded(self) -> None:
        s = _session()
        self.assertFalse(s.select_image(_png(), "image/webp"))
        self.assertIsNone(s.selected_image)

    def test_extraction_success_keeps_image(self) -> None:
        s = _session()
        s.select_image(_png(), "image/png")
        self.assertEqual(s.input_mode, "image")
        self.assertIsNotNone(s.selected_image)
        self.assertEqual(s.extraction.status, "success")


class TestSubmit(unittest.TestCase):
    def test_empty_text_never_calls_gateway(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.set_text("   ")

        self.assertFalse(s.submit())

        self.assertEqual(s.error, EMPTY_TEXT_MESSAGE)
        self.assertEqual(model.generate_calls, [])
        self.assertEqual(s.generation.status, "idle")

    def test_image_mode_requires_extracted_text(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.switch_mode("image")

        self.assertFalse(s.submit())

        self.assertEqual(s.error, EMPTY_EXTRACTED_MESSAGE)
        self.assertEqual(model.generate_calls, [])

    def test_image_mode_uses_edited_extracted_text(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.select_image(_png(), "image/png")
        s.set_extracted_text("Рецепт №9: правка пользователя")

        self.assertTrue(s.submit())

        self.assertEqual(model.generate_calls, ["Рецепт №9: правка пользователя"])
        self.assertEqual(s.record.number, "9")

    def test_generation_error_clears_record(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.set_text("Рецепт №1")
        s.submit()
        self.assertIsNotNone(s.record)

        model.fail_with = GatewayError("Failed to generate post: quota")
        self.assertFalse(s.submit())

        self.assertIsNone(s.record)
        self.assertEqual(s.generation.status, "error")
        self.assertEqual(s.error, "Failed to generate post: quota")

    def test_504_gets_friendly_message(self) -> None:
        s = _session(_CountingModel(fail_with=TimeoutLikelyError("empty response (HTTP 504)")))
        s.set_text("Рецепт №1")
        s.submit()
        self.assertEqual(s.error, SERVER_TIMEOUT_MESSAGE)

    def test_refuses_while_extraction_in_flight(self) -> None:
        model = _CountingModel()
        s = _session(model)
        s.set_text("Рецепт №1")
        s.extraction.start()

        self.assertFalse(s.submit())
        self.assertEqual(model.generate_calls, [])

    def test_successful_generation_clears_export_status(self) -> None:
        s = _session(exporter=_RecordingExporter(ExportError(500, "Internal Server Error", "x")))
        s.set_text("Рецепт №1")
        s.submit()
        s.send_to_sheet()
        self.assertEqual(s.export.status, "error")

        s.submit()
        self.assertEqual(s.export.status, "idle")


class TestExportStatus(unittest.TestCase):
    def test_no_record_no_export(self) -> None:
        exporter = _RecordingExporter()
        s = _session(exporter=exporter)
        self.assertFalse(s.send_to_sheet())
        self.assertEqual(exporter.records, [])

    def test_status_reverts_after_window(self) -> None:
        clock = _Clock()
        s = _session(clock=clock)
        s.set_text("Рецепт №1")
        s.submit()

        self.assertTrue(s.send_to_sheet())
        self.assertEqual(s.export.status, "success")
        clock.now += 2.9
        self.assertEqual(s.export.status, "success")
        clock.now += 0.1
        self.assertEqual(s.export.status, "idle")

    def test_from_config_uses_export_window_and_media_rules(self) -> None:
        cfg = AppConfig.model_validate(
            {"export": {"status_display_seconds": 1}, "media": {"allowed_mime_types": ["image/jpeg"]}}
        )
        clock = _Clock()
        s = RecipePostSession.from_config(cfg, _CountingModel(), _RecordingExporter(), clock=clock)

        self.assertFalse(s.select_image(_png(), "image/png"))
        self.assertIsNone(s.selected_image)

        s.switch_mode("text")
        s.set_text("Рецепт №1")
        s.submit()
        self.assertTrue(s.send_to_sheet())
        clock.now += 0.9
        self.assertEqual(s.export.status, "success")
        clock.now += 0.1
        self.assertEqual(s.export.status, "idle")


class TestEndToEnd(unittest.TestCase):
    """Full flow: session -> HTTP gateway -> Flask endpoints -> offline model, then webhook."""

    def _gateway(self) -> HttpRecipeGateway:
        app = create_app(AppConfig(), model=OfflineRecipeModel())
        return HttpRecipeGateway(
            GatewayConfig(base_url="http://recipes.test"),
            client=httpx.Client(transport=httpx.WSGITransport(app=app)),
        )

    def _exporter(self, response: httpx.Response, seen: list[httpx.Request]) -> WebhookExporter:
        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return response

        return WebhookExporter(
            WebhookConfig(url="https://hook.example.test/x"),
            client=httpx.Client(transport=httpx.MockTransport(_handler)),
        )

    def test_generate_edit_export_success(self) -> None:
        clock = _Clock()
        seen: list[httpx.Request] = []
        s = RecipePostSession(
            self._gateway(),
            self._exporter(httpx.Response(200, text="Accepted"), seen),
            clock=clock,
        )

        s.set_text("Рецепт №12: салат из огурцов и укропа")
        self.assertTrue(s.submit())
        assert s.record is not None
        self.assertEqual(s.record.number, "12")
        self.assertGreaterEqual(len(s.record.recipe.split("\n")), 3)
        for key, value in s.record.to_wire().items():
            self.assertTrue(value.strip(), msg=key)
        self.assertRegex(s.record.nutrition, r"\d")

        before = s.record.to_wire()
        s.edit_field("Заголовок", "Новый салат")
        after = s.record.to_wire()
        self.assertEqual(after, dict(before, Заголовок="Новый салат"))

        self.assertTrue(s.send_to_sheet())
        body = json.loads(seen[0].content.decode("utf-8"))
        self.assertEqual(body, {"post_content": after})
        self.assertEqual(body["post_content"]["Заголовок"], "Новый салат")

        self.assertEqual(s.export.status, "success")
        clock.now += 3.0
        self.assertEqual(s.export.status, "idle")

    def test_export_failure_reports_status_and_body(self) -> None:
        clock = _Clock()
        seen: list[httpx.Request] = []
        s = RecipePostSession(
            self._gateway(),
            self._exporter(httpx.Response(500, text="Internal error"), seen),
            clock=clock,
        )
        s.set_text("Рецепт №12: салат")
        s.submit()

        self.assertFalse(s.send_to_sheet())

        self.assertEqual(s.export.status, "error")
        self.assertIn("500", s.export.message)
        self.assertIn("Internal error", s.export.message)
        clock.now += 3.0
        self.assertEqual(s.export.status, "idle")
        self.assertIsNone(s.export.message)

    def test_image_flow_through_endpoints(self) -> None:
        s = RecipePostSession(self._gateway(), _RecordingExporter(), clock=_Clock())

        self.assertTrue(s.select_image(_png((3000, 2000)), "image/png"))
        self.assertIn("Рецепт №7", s.extracted_text)
        self.assertTrue(s.submit())
        self.assertEqual(s.record.number, "7")


if __name__ == "__main__":
    unittest.main()
