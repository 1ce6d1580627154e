import logging
import threading

from .errors import StoreUnavailable, SyncError


class Subscription:
    """Cancellable handle for a live document subscription"""

    def __init__(self, publisher, callback, on_error=None, name=None):
        self._publisher = publisher
        self.callback = callback
        self.on_error = on_error
        self.name = name or getattr(callback, '__qualname__', 'subscriber')
        self.active = True

    def cancel(self):
        """Stop delivery; safe to call more than once"""
        if self.active:
            self.active = False
            self._publisher._remove(self)
            logging.debug(f"🔕 Subscription cancelled: {self.name}")

    def deliver(self, value):
        if not self.active:
            return
        try:
            self.callback(value)
        except Exception as e:
            logging.error(f"💥 Subscriber '{self.name}' failed: {e}")

    def fail(self, error):
        if not self.active:
            return
        logging.warning(f"⚠️ Subscription '{self.name}' refresh failed: {error}")
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception as e:
            logging.error(f"💥 Error handler of '{self.name}' failed: {e}")


class Publisher:
    """
    Fan-out of store snapshots to subscribers.

    Writers hold notify_lock across commit and publish, so every subscriber sees
    updates in commit order.
    """

    def __init__(self):
        self.notify_lock = threading.RLock()
        self._subscribers = []
        self._subscribers_lock = threading.Lock()

    @property
    def subscriber_count(self):
        with self._subscribers_lock:
            return len(self._subscribers)

    def _add(self, subscription):
        with self._subscribers_lock:
            self._subscribers.append(subscription)

    def _remove(self, subscription):
        with self._subscribers_lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _snapshot_subscribers(self):
        with self._subscribers_lock:
            return list(self._subscribers)

    def attach(self, callback, snapshot, on_error=None, name=None):
        """Register a subscriber and deliver the current value to it first"""
        with self.notify_lock:
            subscription = Subscription(self, callback, on_error=on_error, name=name)
            self._add(subscription)
            self._deliver_to([subscription], snapshot)
            return subscription

    def publish(self, snapshot):
        """Deliver a fresh snapshot to every active subscriber"""
        with self.notify_lock:
            self._deliver_to(self._snapshot_subscribers(), snapshot)

    def _deliver_to(self, subscriptions, snapshot):
        if not subscriptions:
            return
        try:
            value = snapshot()
        except StoreUnavailable as e:
            error = SyncError(str(e))
            for subscription in subscriptions:
                subscription.fail(error)
            return
        for subscription in subscriptions:
            subscription.deliver(value)
