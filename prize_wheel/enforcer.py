"""
Play-once enforcement.

may_play() is the advisory check done at login. The binding guarantee comes from
claim() when a spin starts and commit() when it resolves: a name is reserved for
the duration of its spin and the record is written with an atomic
insert-if-absent, so two sessions using the same name cannot both be rewarded.
"""
import logging
import threading
from enum import Enum

from .errors import AlreadyPlayed, AuthCheckFailed, StoreUnavailable, WriteFailed
from .record_store import normalize_name


class PlayCheck(Enum):
    ALLOWED = 'allowed'
    ALREADY_PLAYED = 'already_played'
    CONNECTION_ERROR = 'connection_error'


class UniquenessEnforcer:
    def __init__(self, record_store):
        self.record_store = record_store
        self._claims = set()
        self._lock = threading.Lock()

    def _key(self, name):
        return normalize_name(name, self.record_store.case_sensitive_names)

    def may_play(self, name):
        try:
            played = self.record_store.exists(name)
        except StoreUnavailable as e:
            logging.error(f"💥 Uniqueness check failed for '{name.strip()}': {e}")
            return PlayCheck.CONNECTION_ERROR
        return PlayCheck.ALREADY_PLAYED if played else PlayCheck.ALLOWED

    def claim(self, name):
        """Reserve name for one in-flight spin"""
        key = self._key(name)
        with self._lock:
            if key in self._claims:
                logging.warning(f"🔒 Claim refused, '{name.strip()}' is already spinning")
                raise AlreadyPlayed()
            try:
                played = self.record_store.exists(name)
            except StoreUnavailable as e:
                raise AuthCheckFailed() from e
            if played:
                raise AlreadyPlayed()
            self._claims.add(key)

    def release(self, name):
        with self._lock:
            self._claims.discard(self._key(name))

    def is_claimed(self, name):
        with self._lock:
            return self._key(name) in self._claims

    def commit(self, record):
        """Write the result of a claimed spin and drop the claim"""
        try:
            return self.record_store.insert_if_absent(record)
        except StoreUnavailable as e:
            raise WriteFailed() from e
        finally:
            self.release(record.user)
