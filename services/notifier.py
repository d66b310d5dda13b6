"""In-process publish/subscribe fanout of newly stored readings."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from app.schemas import StoredReading

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[StoredReading], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by :meth:`ChangeNotifier.subscribe`."""

    callback: ReadingCallback
    owner_id: Optional[str]
    notifier: "ChangeNotifier" = field(repr=False)
    id: str = field(default_factory=lambda: str(uuid4()))
    active: bool = True

    def matches(self, reading: StoredReading) -> bool:
        return self.owner_id is None or self.owner_id == reading.user_id

    def unsubscribe(self) -> None:
        self.notifier.unsubscribe(self)


class ChangeNotifier:
    """Registry of subscriber callbacks plus a fire-and-forget ``publish``.

    A reading is delivered only to subscriptions that were registered when
    ``publish`` was called and are still registered when their turn comes.
    Callbacks run on worker threads without the registry lock held, so they
    may subscribe or unsubscribe freely.
    """

    def __init__(self, workers: int = 2) -> None:
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="reading-fanout"
        )
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = Lock()

    def subscribe(
        self, callback: ReadingCallback, owner_id: Optional[str] = None
    ) -> Subscription:
        subscription = Subscription(callback=callback, owner_id=owner_id, notifier=self)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        logger.debug(
            "Subscriber registered",
            extra={"subscription_id": subscription.id, "user_id": owner_id},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            removed = self._subscriptions.pop(subscription.id, None)
        if removed is not None:
            logger.debug(
                "Subscriber removed", extra={"subscription_id": subscription.id}
            )

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, reading: StoredReading) -> Future[None]:
        """Schedule delivery of ``reading`` and return without waiting for it.

        Raises ``RuntimeError`` once the notifier has been shut down.
        """

        with self._lock:
            targets = [sub for sub in self._subscriptions.values() if sub.matches(reading)]
        return self.executor.submit(self._deliver, reading, targets)

    def shutdown(self) -> None:
        with self._lock:
            for subscription in self._subscriptions.values():
                subscription.active = False
            self._subscriptions.clear()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _deliver(self, reading: StoredReading, targets: List[Subscription]) -> None:
        for subscription in targets:
            # An unsubscribe landing after this check can still see this one delivery.
            with self._lock:
                if not subscription.active:
                    continue
            try:
                subscription.callback(reading.model_copy(deep=True))
            except Exception:
                logger.exception(
                    "Subscriber callback failed",
                    extra={"subscription_id": subscription.id, "reading_id": reading.id},
                )
