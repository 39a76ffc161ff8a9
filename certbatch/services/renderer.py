from __future__ import annotations

import logging
import re
from functools import lru_cache
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from ..constants import (
    FIT_MIN_FONT_SIZE_PX,
    FIT_STEP_PX,
    PREVIEW_FALLBACK_FILENAME,
    PREVIEW_SAMPLE_NAME,
    TEMPLATE_FORMATS,
)
from ..errors import InputValidationError, RenderError, TemplateDecodeError
from ..models import LayoutConfig, RenderedCertificate, TemplateImage
from ..shared.fonts import FontRegistry

logger = logging.getLogger("certbatch.render")

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9]")

@lru_cache(maxsize=1)
def default_fonts() -> FontRegistry:
    return FontRegistry.from_env()


def _fonts(fonts: FontRegistry | None) -> FontRegistry:
    return fonts if fonts is not None else default_fonts()


def sanitize_file_name(name: str, extension: str = ".png") -> str:
    """Replace every character outside ``[A-Za-z0-9]`` with ``_``."""

    return _UNSAFE_RE.sub("_", name) + extension


def load_template(data: bytes) -> TemplateImage:
    """Decode PNG/JPEG template bytes once for a whole batch."""

    if not data:
        raise InputValidationError("Template image is empty.")
    try:
        image = Image.open(BytesIO(data))
        image_format = image.format
        image.load()
    except Image.DecompressionBombError as exc:
        raise InputValidationError(f"Template image is too large: {exc}") from exc
    except UnidentifiedImageError as exc:
        raise InputValidationError("Template must be a PNG or JPEG image.") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise TemplateDecodeError(f"Template image could not be decoded: {exc}") from exc
    if image_format not in TEMPLATE_FORMATS:
        raise InputValidationError(
            f"Template must be a PNG or JPEG image, got {image_format or 'unknown'}."
        )
    if image.mode not in ("RGB", "RGBA"):
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        image = image.convert("RGBA" if has_alpha else "RGB")
    logger.info(
        "[RENDER] template format=%s size=%sx%s mode=%s",
        image_format,
        image.width,
        image.height,
        image.mode,
    )
    return TemplateImage(image=image, format=image_format)


def _fit_font(
    draw: ImageDraw.ImageDraw,
    text: str,
    layout: LayoutConfig,
    registry: FontRegistry,
    max_width_px: float,
) -> ImageFont.FreeTypeFont:
    size = layout.font_size_px
    while True:
        font = registry.load(layout.font_family, size)
        width = draw.textlength(text, font=font)
        if width <= max_width_px or size <= FIT_MIN_FONT_SIZE_PX:
            return font
        size = max(size - FIT_STEP_PX, FIT_MIN_FONT_SIZE_PX)


def render_certificate(
    template: TemplateImage,
    text: str,
    layout: LayoutConfig,
    fonts: FontRegistry | None = None,
) -> bytes:
    """Draw ``text`` onto a fresh copy of ``template`` and return PNG bytes.

    The output has the template's exact pixel size. Text is centered on both
    axes at the layout's percentage position. The template is never modified.
    """

    registry = _fonts(fonts)
    width, height = template.size

    canvas = Image.new(template.image.mode, (width, height))
    canvas.paste(template.image, (0, 0, width, height))
    draw = ImageDraw.Draw(canvas)

    if layout.fit_width_percent:
        font = _fit_font(draw, text, layout, registry, width * layout.fit_width_percent / 100.0)
    else:
        font = registry.load(layout.font_family, layout.font_size_px)

    x, y = layout.position(width, height)
    try:
        draw.text((x, y), text, font=font, fill=layout.color_hex, anchor="mm")
    except ValueError as exc:
        raise RenderError(f"Could not draw {text!r}: {exc}") from exc

    buffer = BytesIO()
    try:
        canvas.save(buffer, format="PNG")
    except OSError as exc:
        raise RenderError(f"PNG encoding failed for {text!r}: {exc}") from exc
    data = buffer.getvalue()
    if not data:
        raise RenderError(f"PNG encoding produced no data for {text!r}")
    return data


def render_named(
    template: TemplateImage,
    name: str,
    layout: LayoutConfig,
    fonts: FontRegistry | None = None,
) -> RenderedCertificate:
    return RenderedCertificate(
        file_name=sanitize_file_name(name),
        image_bytes=render_certificate(template, name, layout, fonts),
        recipient_name=name,
    )


def render_preview(
    template: TemplateImage,
    name: str | None,
    layout: LayoutConfig,
    fonts: FontRegistry | None = None,
) -> RenderedCertificate:
    """Single-certificate render; blank names draw the sample placeholder."""

    cleaned = (name or "").strip()
    return RenderedCertificate(
        file_name=sanitize_file_name(cleaned or PREVIEW_FALLBACK_FILENAME),
        image_bytes=render_certificate(template, cleaned or PREVIEW_SAMPLE_NAME, layout, fonts),
        recipient_name=cleaned or PREVIEW_SAMPLE_NAME,
    )
