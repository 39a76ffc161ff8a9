from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from PIL import Image

RowRecord = Mapping[str, Any]


def make_row(values: dict[str, Any]) -> RowRecord:
    """Freeze a column -> cell mapping, preserving column order."""

    return MappingProxyType(dict(values))


class RowState(enum.Enum):
    PENDING = "pending"
    SKIPPED_NO_NAME = "skipped_no_name"
    RENDER_FAILED = "render_failed"
    RENDERED = "rendered"
    EMAIL_QUEUED = "email_queued"
    EMAIL_SKIPPED = "email_skipped"


@dataclass(frozen=True)
class LayoutConfig:
    font_family: str
    font_size_px: int
    color_hex: str
    x_percent: float
    y_percent: float
    fit_width_percent: float | None = None

    def position(self, width: int, height: int) -> tuple[float, float]:
        return (self.x_percent / 100.0 * width, self.y_percent / 100.0 * height)


@dataclass(frozen=True)
class TemplateImage:
    image: Image.Image
    format: str

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


@dataclass(frozen=True)
class RenderedCertificate:
    file_name: str
    image_bytes: bytes
    recipient_name: str


@dataclass(frozen=True)
class SendOutcome:
    recipient: str
    ok: bool
    detail: str


@dataclass(frozen=True)
class BatchOutcome:
    total_rows: int
    rendered: int
    skipped: int
    render_failed: int
    emails_sent: int
    emails_failed: int
    archive_path: Path | None
    file_names: tuple[str, ...] = field(default_factory=tuple)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total_rows,
            "rendered": self.rendered,
            "sent": self.emails_sent,
            "failed": self.emails_failed,
        }
