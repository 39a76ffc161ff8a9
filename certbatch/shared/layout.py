from __future__ import annotations

from typing import Any, Mapping

from PIL import ImageColor

from ..constants import (
    DEFAULT_FONT_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE_PX,
    DEFAULT_X_PERCENT,
    DEFAULT_Y_PERCENT,
)
from ..errors import InputValidationError
from ..models import LayoutConfig

PERCENT_MIN = 0.0
PERCENT_MAX = 100.0

# Upload form field names -> LayoutConfig attributes.
FORM_FIELDS = {
    "fontStyle": "font_family",
    "fontSize": "font_size_px",
    "fontColor": "color_hex",
    "posX": "x_percent",
    "posY": "y_percent",
    "fitWidth": "fit_width_percent",
}


def _clamp_percent(value: float) -> float:
    return max(PERCENT_MIN, min(value, PERCENT_MAX))


def _parse_float(raw: Any, field: str, default: float | None) -> float | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise InputValidationError(f"{field} must be a number, got {raw!r}") from exc


def parse_color(value: str) -> tuple[int, ...]:
    try:
        return ImageColor.getrgb(value)
    except ValueError as exc:
        raise InputValidationError(f"Unsupported font color: {value!r}") from exc


def build_layout(
    *,
    font_family: str | None = None,
    font_size_px: Any = None,
    color_hex: str | None = None,
    x_percent: Any = None,
    y_percent: Any = None,
    fit_width_percent: Any = None,
) -> LayoutConfig:
    """Validate raw layout values and return a ``LayoutConfig``.

    Percentages outside ``[0, 100]`` are clamped. The font size must be a
    positive integer and the color any string Pillow understands (``#rrggbb``).
    """

    family = (font_family or "").strip() or DEFAULT_FONT_FAMILY

    size = _parse_float(font_size_px, "fontSize", float(DEFAULT_FONT_SIZE_PX))
    if size is None or size <= 0 or not float(size).is_integer():
        raise InputValidationError(f"fontSize must be a positive integer, got {font_size_px!r}")

    color = (color_hex or "").strip() or DEFAULT_FONT_COLOR
    parse_color(color)

    x_val = _parse_float(x_percent, "posX", DEFAULT_X_PERCENT)
    y_val = _parse_float(y_percent, "posY", DEFAULT_Y_PERCENT)

    fit = _parse_float(fit_width_percent, "fitWidth", None)
    if fit is not None:
        fit = _clamp_percent(fit) or None

    return LayoutConfig(
        font_family=family,
        font_size_px=int(size),
        color_hex=color,
        x_percent=_clamp_percent(x_val),
        y_percent=_clamp_percent(y_val),
        fit_width_percent=fit,
    )


def layout_from_form(form: Mapping[str, Any]) -> LayoutConfig:
    values = {attr: form.get(field) for field, attr in FORM_FIELDS.items()}
    return build_layout(**values)
