"""
Record store adapter: the shared collection of play results.

Records are insert-only. Timestamps are assigned here at commit time and never go
backwards, so "newest first" is a stable order for every subscriber.
"""
import logging
import os
import uuid
from datetime import datetime, timezone

from .errors import DuplicateRecord, StoreUnavailable
from .storage import load_json_file, save_json_file
from .subscription import Publisher

RECORDS_FILENAME = 'records.json'


def normalize_name(name, case_sensitive=True):
    """Key used for every participant-name comparison"""
    name = (name or '').strip()
    return name if case_sensitive else name.casefold()


class PlayRecord:
    """One participant's result; a record without a timestamp has not been acknowledged yet"""

    def __init__(self, user, result, timestamp=None, id=None):
        self.user = user
        self.result = result
        self.timestamp = timestamp
        self.id = id

    def __eq__(self, other):
        if not isinstance(other, PlayRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"PlayRecord(user={self.user!r}, result={self.result!r}, timestamp={self.timestamp!r}, id={self.id!r})"

    @property
    def pending(self):
        return self.timestamp is None

    def to_dict(self):
        return {
            'user': self.user,
            'result': self.result,
            'timestamp': self.timestamp,
            'id': self.id,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            user=data.get('user', ''),
            result=data.get('result', ''),
            timestamp=data.get('timestamp'),
            id=data.get('id'),
        )


class DeleteReport:
    def __init__(self, deleted, total, error=None):
        self.deleted = deleted
        self.total = total
        self.error = error

    @property
    def complete(self):
        return self.error is None and self.deleted == self.total


def _parse_timestamp(value):
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _order_desc(records):
    """Pending records first, then newest timestamp first; later inserts win ties"""
    indexed = list(enumerate(records))
    floor = datetime.min.replace(tzinfo=timezone.utc)

    def sort_key(pair):
        position, record = pair
        stamp = _parse_timestamp(record.timestamp)
        return (record.pending, stamp or floor, position)

    return [record for _, record in sorted(indexed, key=sort_key, reverse=True)]


class RecordStore:
    def __init__(self, data_dir, case_sensitive_names=True):
        self.path = os.path.join(data_dir, RECORDS_FILENAME)
        self.case_sensitive_names = case_sensitive_names
        self._publisher = Publisher()

    def _load(self):
        raw = load_json_file(self.path, [], validate=lambda data: isinstance(data, list))
        return [PlayRecord.from_dict(item) for item in raw if isinstance(item, dict)]

    def _save(self, records, backup=False):
        save_json_file(self.path, [record.to_dict() for record in records], backup=backup)

    def _key(self, name):
        return normalize_name(name, self.case_sensitive_names)

    def _next_timestamp(self, records):
        now = datetime.now(timezone.utc)
        stamps = [s for s in (_parse_timestamp(r.timestamp) for r in records) if s is not None]
        if stamps:
            now = max(now, max(stamps))
        return now.isoformat()

    def query(self, user):
        """All records whose normalized user name matches"""
        key = self._key(user)
        return [record for record in self._load() if self._key(record.user) == key]

    def exists(self, user):
        return bool(self.query(user))

    def all_records(self):
        """Every record, newest first"""
        return _order_desc(self._load())

    def _commit(self, records, record):
        acked = PlayRecord(
            user=record.user.strip(),
            result=record.result,
            timestamp=self._next_timestamp(records),
            id=record.id or str(uuid.uuid4()),
        )
        records.append(acked)
        self._save(records)
        logging.info(f"📝 Record saved: {acked.user} -> '{acked.result}'")
        self._publisher.publish(self.all_records)
        return acked

    def insert(self, record):
        """Unconditional append; returns the acknowledged record"""
        with self._publisher.notify_lock:
            return self._commit(self._load(), record)

    def insert_if_absent(self, record):
        """Append only if no record exists for the same participant, atomically"""
        with self._publisher.notify_lock:
            records = self._load()
            key = self._key(record.user)
            if any(self._key(existing.user) == key for existing in records):
                logging.warning(f"🚫 Duplicate record refused for '{record.user.strip()}'")
                raise DuplicateRecord(f"'{record.user.strip()}' already has a record")
            return self._commit(records, record)

    def subscribe_ordered_by_timestamp_desc(self, callback, on_error=None, name=None):
        return self._publisher.attach(callback, self.all_records, on_error=on_error, name=name)

    def delete_all(self):
        """Bulk reset in a single rewrite; the report says how much was cleared"""
        with self._publisher.notify_lock:
            try:
                total = len(self._load())
            except StoreUnavailable as e:
                return DeleteReport(deleted=0, total=0, error=str(e))
            if total == 0:
                return DeleteReport(deleted=0, total=0)
            try:
                self._save([], backup=True)
            except StoreUnavailable as e:
                logging.error(f"💥 Bulk delete failed: {e}")
                return DeleteReport(deleted=0, total=total, error=str(e))
            logging.info(f"🗑️ All records cleared ({total})")
            self._publisher.publish(self.all_records)
            return DeleteReport(deleted=total, total=total)
