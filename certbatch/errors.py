"""Error taxonomy for certificate batches."""

from __future__ import annotations


class CertBatchError(Exception):
    """Base class for every error raised by certbatch."""


class InputValidationError(CertBatchError, ValueError):
    """Raised before any row is processed when uploaded input is unusable."""


class EmptyInputError(InputValidationError):
    """Raised when the spreadsheet yields no data rows."""


class RenderError(CertBatchError):
    """Raised when a single certificate cannot be drawn or encoded."""


class SendError(CertBatchError):
    """Raised by a mail transport for a single failed delivery."""


class FatalBatchError(CertBatchError):
    """Errors that abort the whole batch."""


class TemplateDecodeError(FatalBatchError):
    """Raised when the template image cannot be decoded."""


class ArchiveWriteError(FatalBatchError):
    """Raised when the archive cannot be opened, written or finalized."""
