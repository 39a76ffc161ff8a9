"""Batch orchestration: rows in, archive and mail tallies out."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, Sequence

from ..constants import ARCHIVE_PREFIX, EMAIL_COLUMN, NAME_COLUMN
from ..errors import RenderError
from ..models import BatchOutcome, LayoutConfig, RowRecord, RowState, TemplateImage
from ..shared.fonts import FontRegistry
from ..shared.mail_utils import recipient_from_cell
from ..shared.rows import cell_text, extract_rows
from .archive import ArchiveBuilder
from .dispatcher import CertificateMailer, DispatchTally, NotificationDispatcher
from .renderer import load_template, render_named

logger = logging.getLogger("certbatch.pipeline")

ProgressSink = Callable[[int, int], None]


def _report(progress: ProgressSink | None, processed: int, total: int) -> None:
    if progress is None:
        return
    try:
        progress(processed, total)
    except Exception:
        logger.exception("[BATCH] progress sink failed at %s/%s", processed, total)


def run_batch(
    rows: Sequence[RowRecord],
    template: TemplateImage,
    layout: LayoutConfig,
    archive: ArchiveBuilder,
    dispatcher: NotificationDispatcher | None = None,
    progress: ProgressSink | None = None,
    fonts: FontRegistry | None = None,
) -> BatchOutcome:
    """Render every named row into ``archive`` and queue mail for valid addresses.

    ``archive`` must already be open; it is finalized here once every row has
    been processed and every queued send has settled. Per-row render and send
    failures are counted, never raised. Archive errors propagate and leave no
    archive behind.
    """

    total = len(rows)
    rendered = skipped = render_failed = 0
    try:
        for index, row in enumerate(rows, 1):
            state = RowState.PENDING
            name = cell_text(row.get(NAME_COLUMN))
            if not name:
                state = RowState.SKIPPED_NO_NAME
                skipped += 1
            else:
                try:
                    certificate = render_named(template, name, layout, fonts)
                except RenderError as exc:
                    logger.warning("[BATCH] row=%s name=%s render failed: %s", index, name, exc)
                    state = RowState.RENDER_FAILED
                    render_failed += 1
                else:
                    rendered += 1
                    archive.add(certificate.file_name, certificate.image_bytes)
                    recipient = None
                    if dispatcher is not None and EMAIL_COLUMN in row:
                        recipient = recipient_from_cell(row.get(EMAIL_COLUMN))
                    if recipient:
                        dispatcher.submit(recipient, certificate)
                        state = RowState.EMAIL_QUEUED
                    else:
                        state = RowState.EMAIL_SKIPPED
            logger.debug("[BATCH] row=%s state=%s", index, state.value)
            _report(progress, index, total)

        tally = dispatcher.join() if dispatcher is not None else DispatchTally()
        archive_path = archive.finalize()
    except BaseException:
        archive.discard()
        if dispatcher is not None:
            dispatcher.shutdown()
        raise

    outcome = BatchOutcome(
        total_rows=total,
        rendered=rendered,
        skipped=skipped,
        render_failed=render_failed,
        emails_sent=tally.sent,
        emails_failed=tally.failed,
        archive_path=archive_path,
        file_names=archive.names,
    )
    logger.info(
        "[BATCH] done total=%s rendered=%s skipped=%s render_failed=%s sent=%s failed=%s archive=%s",
        outcome.total_rows,
        outcome.rendered,
        outcome.skipped,
        outcome.render_failed,
        outcome.emails_sent,
        outcome.emails_failed,
        archive_path,
    )
    return outcome


def archive_name() -> str:
    return f"{ARCHIVE_PREFIX}{int(time.time() * 1000)}.zip"


def process_upload(
    spreadsheet: bytes,
    template: bytes,
    layout: LayoutConfig,
    output_dir: str | os.PathLike[str],
    *,
    filename: str | None = None,
    mailer: CertificateMailer | None = None,
    mail_workers: int | None = None,
    progress: ProgressSink | None = None,
    fonts: FontRegistry | None = None,
    archive_filename: str | None = None,
) -> BatchOutcome:
    """Run one batch end to end from uploaded bytes.

    Stages: extract rows, decode template, open archive, render/dispatch,
    finalize. Input errors surface before an archive file is created.
    """

    rows = extract_rows(spreadsheet, filename)
    template_image = load_template(template)

    target = Path(output_dir) / (archive_filename or archive_name())
    logger.info("[BATCH] start rows=%s archive=%s email=%s", len(rows), target, mailer is not None)

    archive = ArchiveBuilder(target).open()

    dispatcher = None
    if mailer is not None:
        if mail_workers is None:
            dispatcher = NotificationDispatcher(mailer)
        else:
            dispatcher = NotificationDispatcher(mailer, max_workers=mail_workers)

    return run_batch(
        rows,
        template_image,
        layout,
        archive,
        dispatcher=dispatcher,
        progress=progress,
        fonts=fonts,
    )
