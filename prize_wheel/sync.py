"""
Live wheel configuration sync.

Every update from the config store replaces the item list wholesale. Default items
are only used while no config document has ever been observed.
"""
import logging
import math
import threading


def parse_items(text):
    """Split free text into prize labels, dropping blank lines and keeping order"""
    lines = (text or '').replace('\r\n', '\n').split('\n')
    return [line for line in lines if line.strip()]


def join_items(items):
    return '\n'.join(items)


def slice_arc(item_count):
    return math.pi * 2 / item_count if item_count else 0.0


class ConfigSync:
    def __init__(self, config_store, default_items=()):
        self.config_store = config_store
        self.default_items = list(default_items)
        self.items = []
        self.arc = 0.0
        self.document_seen = False
        self.using_defaults = False
        self.last_error = None
        self._listeners = []
        self._lock = threading.Lock()
        self._subscription = None

    def add_listener(self, listener):
        """listener(items) runs after every accepted update"""
        self._listeners.append(listener)

    def start(self):
        if self._subscription is None or not self._subscription.active:
            self._subscription = self.config_store.subscribe(
                self._on_update, on_error=self._on_error, name='config_sync')
        return self._subscription

    def stop(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def snapshot(self):
        with self._lock:
            return list(self.items)

    def _on_update(self, items):
        with self._lock:
            if items is None:
                if self.document_seen:
                    logging.warning("⚠️ Wheel config document vanished, keeping last known items")
                    return
                new_items = list(self.default_items)
                self.using_defaults = True
            else:
                new_items = list(items)
                self.document_seen = True
                self.using_defaults = False
            self.items = new_items
            self.arc = slice_arc(len(new_items))
            self.last_error = None
        source = 'defaults' if self.using_defaults else 'store'
        logging.info(f"🔄 Wheel items synced from {source}: {len(new_items)} items")
        for listener in list(self._listeners):
            try:
                listener(list(new_items))
            except Exception as e:
                logging.error(f"💥 Config listener error: {e}")

    def _on_error(self, error):
        self.last_error = error
        logging.warning(f"⚠️ Config sync error, keeping {len(self.items)} stale items: {error}")
