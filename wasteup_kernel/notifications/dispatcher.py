"""
Notification Dispatcher — turns lifecycle events into notification records.

Behavioral Contract:
- Composes copy with the text generation collaborator under a bounded timeout;
  falls back to the deterministic template for the event kind on any failure.
- Persists exactly one NotificationRecord per event, medium chosen by kind.
- Publishes each record to live subscribers: in-process, at-most-once, no retry.
  A failing subscriber never affects other subscribers or the caller.
- dispatch() is the entry point for lifecycle side effects: it never raises, so
  a notification problem can never undo a committed transition.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, List, Optional, Set
from uuid import uuid4

from wasteup_kernel.models.notification import NotificationEvent, NotificationRecord
from wasteup_kernel.notifications.templates import MEDIUM_BY_KIND, render_fallback
from wasteup_kernel.store.records import NOTIFICATIONS, RecordStore
from wasteup_kernel.textgen.generator import OfflineTextGenerator, TimeBoundGenerator

logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationRecord], None]


class NotificationDispatcher:
    """
    Owns NotificationRecord creation. Runs inline by default; in "background"
    mode dispatch() hands events to a worker pool and returns immediately.
    """

    def __init__(
        self,
        store: RecordStore,
        text_generator: Optional[TimeBoundGenerator] = None,
        brand_name: str = "Waste Up Ibadan",
        mode: str = "inline",
        workers: int = 2,
    ):
        if mode not in ("inline", "background"):
            raise ValueError(f"Unknown notification mode: {mode}")
        self.store = store
        self.text_generator = text_generator or TimeBoundGenerator(OfflineTextGenerator())
        self.brand_name = brand_name
        self.mode = mode
        self._subscribers: List[Subscriber] = []
        self._subscribers_lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()
        self._executor = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
            if mode == "background"
            else None
        )

    # --- Subscriptions ---

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a live listener. Returns a function that unsubscribes it."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, record: NotificationRecord) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(record)
            except Exception:
                logger.warning(
                    "Subscriber failed for notification %s", record.id, exc_info=True
                )

    # --- Composition & delivery ---

    def compose(self, event: NotificationEvent) -> str:
        """Generated copy for the event, or its fallback template."""
        context = {**event.context, "recipient_name": event.recipient.name}
        text = self.text_generator.generate_or_none(event.kind.value, context)
        if text is None:
            return render_fallback(event.kind, event.context, self.brand_name)
        return text

    def notify(self, event: NotificationEvent) -> NotificationRecord:
        """Compose, persist and publish one notification."""
        record = NotificationRecord(
            id=f"ntf_{uuid4().hex[:12]}",
            user_id=event.recipient.id,
            type=event.kind,
            message=self.compose(event),
            medium=MEDIUM_BY_KIND[event.kind],
            timestamp=datetime.utcnow(),
        )
        self.store.insert(NOTIFICATIONS, record.model_dump(mode="json"))
        logger.info(
            "Notification %s (%s via %s) recorded for %s",
            record.id, record.type.value, record.medium.value, record.user_id,
        )
        self._publish(record)
        return record

    def _notify_safely(self, event: NotificationEvent) -> Optional[NotificationRecord]:
        try:
            return self.notify(event)
        except Exception:
            logger.warning(
                "Notification %s for %s was dropped",
                event.kind.value, event.recipient.id, exc_info=True,
            )
            return None

    def dispatch(self, event: NotificationEvent) -> Optional[Future]:
        """
        Fire-and-forget delivery for lifecycle side effects. Never raises.

        Returns a future resolving to the record (or None if it was dropped);
        inline it is already resolved. Returns None once the dispatcher has
        been shut down.
        """
        if self._executor is None:
            future: Future = Future()
            future.set_result(self._notify_safely(event))
            return future
        try:
            future = self._executor.submit(self._notify_safely, event)
        except RuntimeError:
            logger.warning("Dispatcher is shut down; dropping %s", event.kind.value)
            return None
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    @property
    def pending(self) -> int:
        """Background notifications not yet finished."""
        with self._pending_lock:
            return len(self._pending)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for background notifications queued so far."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self.text_generator.shutdown()

    # --- Recipient views ---

    def get_notifications(self, user_id: str) -> List[NotificationRecord]:
        """All notifications for a recipient, newest first."""
        rows = self.store.find(NOTIFICATIONS, {"user_id": user_id})
        records = [NotificationRecord.model_validate(r) for r in rows]
        return list(reversed(sorted(records, key=lambda n: n.timestamp)))

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification for a recipient as read."""
        unread = self.store.find(NOTIFICATIONS, {"user_id": user_id, "is_read": False})
        with self.store.atomic():
            for row in unread:
                self.store.update(NOTIFICATIONS, row["id"], {"is_read": True})
        return len(unread)

    def clear(self, user_id: str) -> int:
        """Delete every notification for a recipient. No undo."""
        removed = self.store.delete_where(NOTIFICATIONS, {"user_id": user_id})
        logger.info("Cleared %d notifications for %s", removed, user_id)
        return removed
