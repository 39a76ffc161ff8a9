from __future__ import annotations

import logging
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Protocol

from ..constants import DEFAULT_MAIL_WORKERS
from ..models import RenderedCertificate, SendOutcome

logger = logging.getLogger("certbatch.mailer")


class CertificateMailer(Protocol):
    def send_certificate(self, recipient: str, certificate: RenderedCertificate) -> SendOutcome:
        ...


@dataclass(frozen=True)
class DispatchTally:
    sent: int = 0
    failed: int = 0
    outcomes: tuple[SendOutcome, ...] = field(default_factory=tuple)


class NotificationDispatcher:
    """Fan certificate emails out to a thread pool and settle them all at once.

    ``submit`` never blocks on earlier sends. ``join`` waits for every send to
    finish, success or failure, then tallies results in the calling thread.
    """

    def __init__(self, mailer: CertificateMailer, max_workers: int = DEFAULT_MAIL_WORKERS):
        self.mailer = mailer
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="certbatch-mail"
        )
        self._pending: list[tuple[str, Future]] = []
        self._joined = False

    def __enter__(self) -> "NotificationDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def submit(self, recipient: str, certificate: RenderedCertificate) -> None:
        if self._joined:
            raise RuntimeError("dispatcher already joined")
        future = self._executor.submit(self.mailer.send_certificate, recipient, certificate)
        self._pending.append((recipient, future))

    def join(self) -> DispatchTally:
        if self._joined:
            raise RuntimeError("dispatcher already joined")
        self._joined = True
        wait([future for _, future in self._pending], return_when=ALL_COMPLETED)
        outcomes: list[SendOutcome] = []
        for recipient, future in self._pending:
            exc = future.exception()
            if exc is not None:
                logger.error("[MAIL-FAIL] to=%s error=%s", recipient, exc)
                outcomes.append(SendOutcome(recipient=recipient, ok=False, detail=str(exc)))
            else:
                outcomes.append(future.result())
        self.shutdown()
        sent = sum(1 for outcome in outcomes if outcome.ok)
        tally = DispatchTally(sent=sent, failed=len(outcomes) - sent, outcomes=tuple(outcomes))
        logger.info("[MAIL-BATCH] queued=%s sent=%s failed=%s", len(outcomes), tally.sent, tally.failed)
        return tally

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
