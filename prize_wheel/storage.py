import json
import logging
import os
import shutil
import threading
from datetime import datetime

from .errors import StoreUnavailable

file_lock = threading.RLock()


def create_backup(filename):
    """Create a timestamped backup of a JSON file"""
    if os.path.exists(filename):
        backup_path = f"{filename}.{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.bak"
        try:
            shutil.copy2(filename, backup_path)
            logging.info(f"💾 Backup created: {backup_path}")
            return backup_path
        except OSError as e:
            logging.error(f"💥 Backup creation failed: {e}")
    return None


def load_json_file(filename, default_data, validate=None):
    """
    Load JSON file with corruption recovery.

    A missing file is created with default_data. A corrupted file (bad JSON or
    rejected by validate) is backed up and reset. Any other I/O failure means the
    store is unreachable and raises StoreUnavailable.
    """
    with file_lock:
        if not os.path.exists(filename):
            save_json_file(filename, default_data)
            return default_data
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if validate is not None and not validate(data):
                raise json.JSONDecodeError("Invalid document format", filename, 0)
            return data
        except json.JSONDecodeError:
            logging.error(f"🚨 CORRUPTION: '{filename}' corrupted. Auto-recovering...")
            backup_path = create_backup(filename)
            if backup_path:
                logging.info(f"🔒 Corrupted file backed up as: {backup_path}")
            save_json_file(filename, default_data)
            logging.info("✅ Recovery complete. File reset to defaults.")
            return default_data
        except OSError as e:
            logging.error(f"💥 IO ERROR reading '{filename}': {e}")
            raise StoreUnavailable(f"Cannot read {os.path.basename(filename)}: {e}") from e


def read_json_file(filename):
    """Read a JSON file, returning None when it does not exist"""
    with file_lock:
        if not os.path.exists(filename):
            return None
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.error(f"💥 IO ERROR reading '{filename}': {e}")
            raise StoreUnavailable(f"Cannot read {os.path.basename(filename)}: {e}") from e


def save_json_file(filename, data, backup=False):
    """Save JSON file atomically, raising StoreUnavailable if the write fails"""
    with file_lock:
        temp_filename = f"{filename}.tmp"
        try:
            # Validate JSON serialization before writing
            payload = json.dumps(data, indent=2, ensure_ascii=False)

            if backup and os.path.exists(filename):
                create_backup(filename)

            with open(temp_filename, 'w', encoding='utf-8') as f:
                f.write(payload)
            os.replace(temp_filename, filename)
            logging.debug(f"💾 File saved successfully: {filename}")
        except (OSError, TypeError, ValueError) as e:
            logging.error(f"💥 Save error for '{filename}': {e}")
            if os.path.exists(temp_filename):
                try:
                    os.remove(temp_filename)
                except OSError:
                    pass
            raise StoreUnavailable(f"Cannot write {os.path.basename(filename)}: {e}") from e
