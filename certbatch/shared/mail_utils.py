"""Mail helper utilities."""

from __future__ import annotations

import logging
import re
from typing import Any

from .rows import cell_text

logger = logging.getLogger("certbatch.mailer")

_ADDRESS_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value))


def recipient_from_cell(value: Any) -> str | None:
    """Return the trimmed address in ``value`` or ``None`` when unusable.

    Blank cells are silently ignored; malformed addresses are logged.
    """

    candidate = cell_text(value)
    if not candidate:
        return None
    if not is_valid_address(candidate):
        logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
        return None
    return candidate
