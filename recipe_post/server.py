from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from flask import Blueprint, Flask, current_app, jsonify, request

from .config import config_sha256, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, GatewayError, MediaProcessingError
from .event_log import EventLog
from .llm import (
    OpenAIRecipeModel,
    RecipeModel,
    extract_text_logged,
    generate_post_logged,
    metadata_fields,
)
from .media import ImagePayload, decode_payload

# Normalized uploads are always re-encoded as JPEG; see media.normalize_image.
DEFAULT_IMAGE_MIME = "image/jpeg"

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

api_bp = Blueprint("api", __name__)


class BadRequestBody(ValueError):
    """Raised for a missing or malformed JSON request body."""


@dataclass
class _ServerState:
    model: RecipeModel | None
    config_error: str | None
    log: EventLog


def _state() -> _ServerState:
    return current_app.extensions["recipe_post"]


def _model(state: _ServerState) -> RecipeModel:
    if state.model is None:
        raise GatewayError("No model configured.")
    return state.model


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _guard() -> Any:
    """Configuration and method checks shared by both endpoints, in that order."""
    state = _state()
    if state.config_error is not None:
        return _error(state.config_error, 500)
    if request.method != "POST":
        return _error("Method Not Allowed", 405)
    return None


def _json_body() -> dict[str, Any]:
    if not request.get_data():
        raise BadRequestBody("Request body is missing.")
    body = request.get_json(silent=True, force=True)
    if not isinstance(body, dict):
        raise BadRequestBody("Request body must be a JSON object.")
    return body


def _parse_images(raw: Any) -> list[ImagePayload]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BadRequestBody("images must be a list.")

    images: list[ImagePayload] = []
    for item in raw:
        if not isinstance(item, dict):
            raise BadRequestBody("Each image must be an object with mimeType and data.")
        mime = item.get("mimeType")
        data = item.get("data")
        if not isinstance(mime, str) or not isinstance(data, str) or not data:
            raise BadRequestBody("Each image must be an object with mimeType and data.")
        payload = ImagePayload(mime_type=mime.strip().lower(), data=data)
        decode_payload(payload)
        images.append(payload)
    return images


@api_bp.route("/extract-text-from-image", methods=_ALL_METHODS)
def extract_text_from_image():
    """
    Accepts: JSON { image: base64, mimeType?: str }
    Returns: { extractedText } or { error }
    """
    refused = _guard()
    if refused is not None:
        return refused

    state = _state()
    request_id = uuid.uuid4().hex
    state.log.info("request_received", request_id=request_id, endpoint="extract")

    try:
        body = _json_body()
        image = body.get("image")
        if not isinstance(image, str) or not image:
            raise BadRequestBody("Image data is missing from the request.")

        mime = body.get("mimeType")
        payload = ImagePayload(
            mime_type=mime.strip().lower() if isinstance(mime, str) and mime.strip() else DEFAULT_IMAGE_MIME,
            data=image,
        )
        decode_payload(payload)

        extracted, meta = extract_text_logged(_model(state), payload)
    except (BadRequestBody, MediaProcessingError, GatewayError) as e:
        state.log.exception("extract_failed", exc=e, request_id=request_id)
        return _error(f"Failed to extract text: {e}", 500)

    state.log.info(
        "extract_completed",
        request_id=request_id,
        chars=len(extracted),
        **metadata_fields(meta),
    )
    return jsonify({"extractedText": extracted}), 200


@api_bp.route("/generate-post", methods=_ALL_METHODS)
def generate_post():
    """
    Accepts: JSON { text: str, images?: [{ mimeType, data }] }
    Returns: the post object keyed by the Russian field names, or { error }
    """
    refused = _guard()
    if refused is not None:
        return refused

    state = _state()
    request_id = uuid.uuid4().hex
    state.log.info("request_received", request_id=request_id, endpoint="generate")

    try:
        body = _json_body()
        text = body.get("text", "")
        if not isinstance(text, str):
            raise BadRequestBody("text must be a string.")
        images = _parse_images(body.get("images"))

        post, meta = generate_post_logged(_model(state), text, images)
    except (BadRequestBody, MediaProcessingError, GatewayError) as e:
        state.log.exception("generate_failed", exc=e, request_id=request_id)
        return _error(f"Failed to generate post: {e}", 500)

    state.log.info(
        "generate_completed",
        request_id=request_id,
        number=post.number,
        image_count=len(images),
        **metadata_fields(meta),
    )
    return jsonify(post.to_wire()), 200


def create_app(
    cfg: AppConfig,
    *,
    model: RecipeModel | None = None,
    environ: Mapping[str, str] | None = None,
    log: EventLog | None = None,
) -> Flask:
    """
    Application factory.

    Without an injected model the OpenAI model is built from the configured
    credential. A missing credential does not stop the app from starting;
    every endpoint request then answers with the configuration error.
    """
    app = Flask(__name__)
    app.json.ensure_ascii = False  # type: ignore[attr-defined]

    event_log = log or EventLog.null()
    config_error: str | None = None

    if model is None:
        try:
            secrets = resolve_runtime_secrets(cfg, environ=environ)
        except ConfigError as e:
            config_error = str(e)
            event_log.error("config_error", message=config_error)
        else:
            model = OpenAIRecipeModel(
                secrets.genai_api_key,
                genai_cfg=cfg.genai,
                prompts=cfg.prompts,
            )

    app.extensions["recipe_post"] = _ServerState(model=model, config_error=config_error, log=event_log)
    app.register_blueprint(api_bp, url_prefix="/api")

    event_log.info(
        "server_configured",
        config_sha256=config_sha256(cfg),
        model_generation=cfg.genai.model_generation,
        model_extraction=cfg.genai.model_extraction,
        credential_ok=config_error is None,
    )
    return app
