from __future__ import annotations

import logging
from queue import Empty, Queue
from threading import Event, Thread
from typing import Callable

from .. import schemas
from ..database import session_context
from .creator import handle_webhook_notification
from .mail import Mailer, get_mailer
from .opp import OppClient, get_opp_client

logger = logging.getLogger(__name__)


class NotificationProcessor:
    """Background worker that applies OPP notifications sequentially.

    The notify endpoint acknowledges the provider immediately; handling
    needs a round trip to OPP and an e-mail, so it runs here.
    """

    def __init__(
        self,
        opp_factory: Callable[[], OppClient] = get_opp_client,
        mailer_factory: Callable[[], Mailer] = get_mailer,
    ) -> None:
        self.opp_factory = opp_factory
        self.mailer_factory = mailer_factory
        self.queue: "Queue[schemas.WebhookNotification]" = Queue()
        self.stop_event = Event()
        self.worker = Thread(target=self._worker_loop, name="opp-notifications", daemon=True)
        self.worker.start()

    def enqueue(self, notification: schemas.WebhookNotification) -> None:
        logger.info("Queued OPP notification %s (%s)", notification.uid, notification.type)
        self.queue.put(notification)

    def _worker_loop(self) -> None:
        logger.info("Notification processor worker started")
        while not self.stop_event.is_set():
            try:
                notification = self.queue.get(timeout=0.5)
            except Empty:
                continue
            try:
                self._process(notification)
            finally:
                self.queue.task_done()

    def _process(self, notification: schemas.WebhookNotification) -> None:
        with session_context() as session:
            try:
                handle_webhook_notification(session, notification, self.opp_factory(), self.mailer_factory())
            except Exception as exc:
                logger.exception("OPP notification %s (%s) failed: %s", notification.uid, notification.type, exc)

    def shutdown(self) -> None:
        self.stop_event.set()
        self.worker.join(timeout=1)


processor = NotificationProcessor()
