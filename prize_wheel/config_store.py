"""
Config store adapter: the singleton wheel configuration document.

The document is {"items": [...]} and is always replaced wholesale. Subscribers get
the item list (or None while no document exists) immediately and after every set().
"""
import logging
import os

from .errors import ConfigUnavailable, StoreUnavailable
from .storage import read_json_file, save_json_file
from .subscription import Publisher

CONFIG_FILENAME = 'wheel_config.json'


def validate_items(items):
    """Check a prize list, returning (is_valid, error_msg) like the other validators"""
    if not isinstance(items, (list, tuple)):
        return False, "Items must be a list of strings"
    for item in items:
        if not isinstance(item, str):
            return False, "Items must be a list of strings"
        if not item.strip():
            return False, "Items must not contain empty entries"
    return True, None


class ConfigStore:
    def __init__(self, data_dir):
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, CONFIG_FILENAME)
        self._publisher = Publisher()

    def check_connection(self):
        """Fail fast at boot if the store cannot be reached"""
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            if not os.access(self.data_dir, os.R_OK | os.W_OK):
                raise StoreUnavailable(f"No read/write access to {self.data_dir}")
            self.get()
        except (OSError, StoreUnavailable) as e:
            logging.error(f"🚨 Config store unreachable: {e}")
            raise ConfigUnavailable(f"Wheel configuration store unavailable: {e}") from e

    def get(self):
        """Return the stored item list, or None when no document exists yet"""
        document = read_json_file(self.path)
        if document is None:
            return None
        items = document.get('items') if isinstance(document, dict) else None
        is_valid, error_msg = validate_items(items)
        if not is_valid:
            raise StoreUnavailable(f"Malformed wheel config document: {error_msg}")
        return list(items)

    def set(self, items):
        """Replace the whole document and notify subscribers"""
        is_valid, error_msg = validate_items(items)
        if not is_valid:
            raise ValueError(error_msg)
        items = list(items)
        with self._publisher.notify_lock:
            save_json_file(self.path, {'items': items}, backup=True)
            logging.info(f"⚙️ Wheel config saved: {len(items)} items")
            self._publisher.publish(self.get)
        return items

    def subscribe(self, callback, on_error=None, name=None):
        """Fire callback with the current items now and on every change"""
        return self._publisher.attach(callback, self.get, on_error=on_error, name=name)

    @property
    def subscriber_count(self):
        return self._publisher.subscriber_count
