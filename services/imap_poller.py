"""Poll an IMAP mailbox for unseen vendor replies."""

from __future__ import annotations

import contextlib
import imaplib
import logging
import threading
from email.parser import BytesParser
from email.policy import default as default_policy
from typing import Callable, List, Optional

from config.settings import Settings, settings as default_settings
from services.email_normalizer import InboundEmail, from_message
from services.inbound_pipeline import InboundPipeline, InboundResult

logger = logging.getLogger(__name__)


class MailboxNotConfigured(RuntimeError):
    pass


def _imap_connection(config: Settings) -> imaplib.IMAP4:
    if not (config.imap_host and config.imap_user and config.imap_password):
        raise MailboxNotConfigured("IMAP configuration is incomplete")
    if config.imap_use_ssl:
        return imaplib.IMAP4_SSL(config.imap_host, config.imap_port)
    return imaplib.IMAP4(config.imap_host, config.imap_port)


class ImapPoller:
    """Fetch ``UNSEEN`` messages and feed them to the inbound pipeline.

    Fetching ``RFC822`` marks a message as seen, so each poll only sees mail
    that arrived since the previous one.  Redelivery is still possible and is
    absorbed by the pipeline's duplicate check.
    """

    def __init__(
        self,
        pipeline: InboundPipeline,
        *,
        config: Optional[Settings] = None,
        connection_factory: Optional[Callable[[], imaplib.IMAP4]] = None,
    ) -> None:
        self._config = config or default_settings
        self._pipeline = pipeline
        self._connect = connection_factory or (lambda: _imap_connection(self._config))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._config.imap_host and self._config.imap_user and self._config.imap_password)

    def fetch_unseen(self) -> List[InboundEmail]:
        mailbox = self._config.imap_mailbox
        connection = self._connect()
        try:
            connection.login(self._config.imap_user, self._config.imap_password)
            status, _ = connection.select(mailbox)
            if status != "OK":
                raise RuntimeError(f"Unable to select IMAP folder {mailbox}")
            status, data = connection.search(None, "UNSEEN")
            if status != "OK":  # pragma: no cover - network error
                raise RuntimeError("IMAP search failed")
            ids = data[0].split() if data and data[0] else []
            emails: List[InboundEmail] = []
            for msg_id in ids:
                status, msg_data = connection.fetch(msg_id, "(RFC822)")
                if status != "OK":
                    logger.warning("Fetching IMAP message %s failed with %s", msg_id, status)
                    continue
                for part in msg_data:
                    if not isinstance(part, tuple):
                        continue
                    try:
                        msg = BytesParser(policy=default_policy).parsebytes(part[1])
                        emails.append(from_message(msg))
                    except Exception:
                        logger.exception("Could not parse IMAP message %s", msg_id)
                    break
            logger.info("Fetched %d unseen message(s) from %s", len(emails), mailbox)
            return emails
        finally:
            with contextlib.suppress(Exception):
                connection.logout()

    def poll_once(self) -> List[InboundResult]:
        return self._pipeline.process_batch(self.fetch_unseen())

    def start(self) -> None:
        """Poll every ``email_poll_minutes`` on a daemon thread until :meth:`stop`."""

        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop, name="rfp-desk-imap-poller", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=2)

    def _run_loop(self) -> None:
        interval = max(1, self._config.email_poll_minutes) * 60
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Mailbox poll failed")
            self._stop_event.wait(interval)


__all__ = ["ImapPoller", "MailboxNotConfigured"]
