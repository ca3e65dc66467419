from __future__ import annotations

import argparse
import json
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError as PydanticValidationError

from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import (
    ConfigError,
    ExportError,
    GatewayError,
    MediaProcessingError,
    ValidationError,
)
from .event_log import EventLog
from .export import WebhookExporter
from .gateways import HttpRecipeGateway
from .llm import (
    OpenAIRecipeModel,
    RecipeModel,
    extract_text_logged,
    generate_post_logged,
    metadata_fields,
)
from .media import normalize_image
from .offline import OfflineRecipeModel
from .post_schema import PostContent

_MIME_BY_SUFFIX = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (defaults apply when omitted).",
    )
    p.add_argument(
        "--log",
        default=None,
        help="Append JSONL events to this file.",
    )


def _add_model_source(p: argparse.ArgumentParser) -> None:
    group = p.add_mutually_exclusive_group()
    group.add_argument(
        "--offline",
        action="store_true",
        help="Use a deterministic local model instead of the network.",
    )
    group.add_argument(
        "--via-server",
        action="store_true",
        help="Call the HTTP endpoints at gateway.base_url instead of the model directly.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="recipe_post")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser(
        "serve",
        help="Serve the text-extraction and post-generation endpoints.",
    )
    _add_common(serve)
    serve.add_argument(
        "--offline",
        action="store_true",
        help="Answer with a deterministic local model (no API key needed).",
    )
    serve.set_defaults(_handler=_cmd_serve)

    extract = subparsers.add_parser(
        "extract",
        help="Extract the text of a photographed recipe page.",
    )
    _add_common(extract)
    _add_model_source(extract)
    extract.add_argument("--image", required=True, help="PNG or JPEG file.")
    extract.set_defaults(_handler=_cmd_extract)

    generate = subparsers.add_parser(
        "generate",
        help="Generate an Instagram post from recipe text or a recipe photo.",
    )
    _add_common(generate)
    _add_model_source(generate)
    source = generate.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Recipe text.")
    source.add_argument("--text-file", help="File with the recipe text.")
    source.add_argument("--image", help="PNG or JPEG file with the recipe.")
    generate.add_argument("--out", default=None, help="Also write the post JSON here.")
    generate.set_defaults(_handler=_cmd_generate)

    export = subparsers.add_parser(
        "export",
        help="Send a saved post JSON to the spreadsheet webhook.",
    )
    _add_common(export)
    export.add_argument("--post", required=True, help="Post JSON file (as written by generate).")
    export.set_defaults(_handler=_cmd_export)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _open_log(args: argparse.Namespace) -> EventLog:
    path = getattr(args, "log", None)
    return EventLog.open(path) if path else EventLog.null()


def _read_image(path: str) -> tuple[bytes, str]:
    p = Path(path)
    mime = _MIME_BY_SUFFIX.get(p.suffix.lower())
    if mime is None:
        raise MediaProcessingError(f"Unsupported image file: {p.name} (expected .png, .jpg or .jpeg)")
    try:
        return p.read_bytes(), mime
    except OSError as e:
        raise MediaProcessingError(f"Failed to read image file: {p}") from e


def _build_model(cfg: AppConfig, args: argparse.Namespace, stack: ExitStack) -> RecipeModel:
    if getattr(args, "offline", False):
        return OfflineRecipeModel()
    if getattr(args, "via_server", False):
        return stack.enter_context(HttpRecipeGateway(cfg.gateway))
    secrets = resolve_runtime_secrets(cfg)
    return OpenAIRecipeModel(secrets.genai_api_key, genai_cfg=cfg.genai, prompts=cfg.prompts)


def _extract(cfg: AppConfig, model: RecipeModel, image_path: str, log: EventLog) -> str:
    data, mime = _read_image(image_path)
    payload = normalize_image(data, mime, media=cfg.media)
    log.info("image_normalized", path=image_path, bytes_in=len(data), base64_chars=len(payload.data))
    text, meta = extract_text_logged(model, payload)
    log.info("extract_completed", chars=len(text), **metadata_fields(meta))
    return text


def _cmd_serve(args: argparse.Namespace) -> int:
    from .server import create_app

    cfg = load_config(args.config)
    log = _open_log(args)
    model = OfflineRecipeModel() if args.offline else None

    app = create_app(cfg, model=model, log=log)
    log.info("server_starting", host=cfg.server.host, port=cfg.server.port, offline=bool(args.offline))
    try:
        app.run(host=cfg.server.host, port=cfg.server.port)
    finally:
        log.close()
    return 0


def _cmd_extract(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    with ExitStack() as stack:
        log = stack.enter_context(_open_log(args))
        model = _build_model(cfg, args, stack)
        print(_extract(cfg, model, args.image, log))
    return 0


def _cmd_generate(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    with ExitStack() as stack:
        log = stack.enter_context(_open_log(args))
        model = _build_model(cfg, args, stack)

        if args.image:
            text = _extract(cfg, model, args.image, log)
        elif args.text_file:
            try:
                text = Path(args.text_file).read_text(encoding="utf-8")
            except OSError as e:
                raise ValidationError(f"Failed to read text file: {args.text_file}") from e
        else:
            text = args.text or ""

        if not text.strip():
            raise ValidationError("Recipe text is empty.")

        post, meta = generate_post_logged(model, text, [])
        log.info("generate_completed", number=post.number, **metadata_fields(meta))

    rendered = json.dumps(post.to_wire(), indent=2, ensure_ascii=False)
    if args.out:
        Path(args.out).write_text(rendered + "\n", encoding="utf-8")
    print(rendered)
    return 0


def _load_post(path: str) -> PostContent:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Failed to read post JSON from {p}: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("post_content"), dict):
        data = data["post_content"]

    try:
        return PostContent.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid post JSON in {p}: {e}") from e


def _cmd_export(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    post = _load_post(args.post)

    with _open_log(args) as log, WebhookExporter(cfg.webhook) as exporter:
        try:
            exporter.export_record(post)
        except ExportError as e:
            log.warning("export_failed", status_code=e.status_code, body=e.body)
            raise
        log.info("export_completed", number=post.number)

    print("status=success")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except (ConfigError, ValidationError) as e:
        _eprint(str(e))
        return 2
    except (GatewayError, MediaProcessingError, ExportError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
