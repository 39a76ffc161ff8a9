from __future__ import annotations

import logging
import os
from typing import Iterable

from PIL import ImageFont

from ..errors import RenderError

logger = logging.getLogger("certbatch.fonts")

_DEFAULT_FONT_PATH = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"

# Browser font stacks offered by the upload form, mapped onto fonts commonly
# shipped with Linux images.
_FONT_PATHS = {
    "Arial": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "Helvetica": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "Verdana": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "sans-serif": "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "Georgia": "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    "Times New Roman": "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    "serif": "/usr/share/fonts/truetype/dejavu/DejaVuSerif.ttf",
    "Courier New": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "monospace": "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
}

_FONT_EXTENSIONS = (".ttf", ".otf")


class FontRegistry:
    """Resolve a requested font family to a loadable font, with fallbacks.

    Lookup order: fonts registered from ``CERT_FONT_DIR`` (family = file stem),
    the built-in family table, Pillow's own font search by name, the DejaVu
    default, and finally Pillow's bundled default font.
    """

    def __init__(self, paths: dict[str, str] | None = None) -> None:
        self._paths: dict[str, str] = dict(_FONT_PATHS)
        if paths:
            self._paths.update(paths)

    @classmethod
    def from_env(cls) -> "FontRegistry":
        registry = cls()
        font_dir = os.getenv("CERT_FONT_DIR")
        if font_dir:
            registry.register_dir(font_dir)
        return registry

    def register(self, family: str, path: str) -> None:
        if not os.path.isfile(path):
            logger.warning("[FONT] missing font file family=%s path=%s", family, path)
            return
        self._paths[family] = path

    def register_dir(self, directory: str) -> None:
        if not os.path.isdir(directory):
            logger.warning("[FONT] font directory missing: %s; using system fonts", directory)
            return
        for name in sorted(os.listdir(directory)):
            stem, ext = os.path.splitext(name)
            if ext.lower() in _FONT_EXTENSIONS:
                self.register(stem, os.path.join(directory, name))

    def families(self) -> list[str]:
        return sorted(self._paths)

    def _candidates(self, family: str) -> Iterable[str]:
        path = self._paths.get(family)
        if path:
            yield path
        if family:
            yield family
        yield _DEFAULT_FONT_PATH

    def load(self, family: str, size_px: int) -> ImageFont.FreeTypeFont:
        if size_px <= 0:
            raise RenderError(f"Font size must be positive, got {size_px}")
        for index, candidate in enumerate(self._candidates(family)):
            try:
                font = ImageFont.truetype(candidate, size_px)
            except OSError:
                continue
            if index and candidate == _DEFAULT_FONT_PATH:
                logger.warning("[FONT] family=%s→%s (not available)", family, candidate)
            return font
        logger.warning("[FONT] family=%s unavailable; using bundled default font", family)
        try:
            return ImageFont.load_default(size=size_px)
        except (OSError, TypeError) as exc:
            raise RenderError(f"No usable font for family {family!r}") from exc
