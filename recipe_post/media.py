from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from .config_schema import MediaConfig
from .errors import MediaProcessingError

_OUTPUT_MIME = "image/jpeg"


@dataclass(frozen=True)
class ImagePayload:
    """Transport unit for one image: MIME type plus base64 data (no header)."""

    mime_type: str
    data: str

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    def to_wire(self) -> dict[str, str]:
        return {"mimeType": self.mime_type, "data": self.data}


def split_data_uri(uri: str) -> ImagePayload:
    """Strip the `data:<mime>;base64,` header off a data URI."""
    s = (uri or "").strip()
    header, sep, data = s.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise MediaProcessingError("Not a base64 data URI")
    mime = header[len("data:") : -len(";base64")].strip().lower()
    if not mime or not data:
        raise MediaProcessingError("Data URI has no MIME type or payload")
    return ImagePayload(mime_type=mime, data=data)


def bounded_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """
    Scale (width, height) so the longer side is at most max_dimension.

    Aspect ratio is kept; sizes already within the bound are returned as-is.
    """
    w, h = int(width), int(height)
    if w <= 0 or h <= 0:
        raise MediaProcessingError(f"Invalid image size: {w}x{h}")

    if w > h:
        if w > max_dimension:
            h = max(1, round(h * max_dimension / w))
            w = max_dimension
    elif h > max_dimension:
        w = max(1, round(w * max_dimension / h))
        h = max_dimension

    return w, h


def _flatten(img: Image.Image) -> Image.Image:
    # JPEG has no alpha; transparent areas are painted white.
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def resize_to_data_uri(data: bytes, *, media: MediaConfig) -> str:
    """Decode, bound and re-encode an image as a JPEG data URI."""
    try:
        with Image.open(io.BytesIO(data)) as src:
            src.load()
            img = ImageOps.exif_transpose(src) or src
            size = bounded_size(img.width, img.height, media.max_dimension)
            if size != img.size:
                img = img.resize(size, Image.Resampling.LANCZOS)
            img = _flatten(img)

            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=media.jpeg_quality)
    except MediaProcessingError:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise MediaProcessingError(f"Failed to process image: {e}") from e

    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:{_OUTPUT_MIME};base64,{encoded}"


def normalize_image(data: bytes, mime_type: str, *, media: MediaConfig | None = None) -> ImagePayload:
    """
    Turn a user-selected PNG/JPEG file into a size-bounded JPEG payload.

    Raises MediaProcessingError for unsupported types and undecodable bytes.
    """
    cfg = media or MediaConfig()
    mime = (mime_type or "").strip().lower()
    if mime not in cfg.allowed_mime_types:
        allowed = ", ".join(cfg.allowed_mime_types)
        raise MediaProcessingError(f"Unsupported image type {mime or '<none>'!r}; expected one of: {allowed}")
    if not data:
        raise MediaProcessingError("Image file is empty")

    return split_data_uri(resize_to_data_uri(data, media=cfg))


def decode_payload(payload: ImagePayload) -> bytes:
    try:
        return base64.b64decode(payload.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MediaProcessingError(f"Image payload is not valid base64: {e}") from e
