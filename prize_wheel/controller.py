"""
Session/UI controller.

WheelController is the single state store for connected participants. Socket.IO
handlers call into it; it owns the live config sync, the uniqueness enforcer and
each session's spin, and hands finished spins back through callbacks.
"""
import logging
import random
import threading
import time

from .enforcer import PlayCheck, UniquenessEnforcer
from .errors import (AlreadyPlayed, AlreadySpinning, AuthCheckFailed, DuplicateRecord,
                     EmptyWheel, InvalidName, NotAuthorized, UnpublishedItems, WriteFailed)
from .record_store import PlayRecord
from .resolver import slice_index
from .spin import SpinState
from .sync import ConfigSync, parse_items, slice_arc


def _is_reordering(items, published):
    return sorted(items) == sorted(published)


class Session:
    """One participant's browser connection; gone on reload"""

    def __init__(self, sid, items):
        self.sid = sid
        self.name = None
        self.authorized = False
        self.has_played = False
        self.items = list(items)
        self.angle = 0.0
        self.spin = None

    @property
    def arc(self):
        return slice_arc(len(self.items))

    @property
    def is_spinning(self):
        return self.spin is not None and self.spin.spinning

    def to_dict(self):
        return {
            'name': self.name,
            'authorized': self.authorized,
            'has_played': self.has_played,
            'items': list(self.items),
            'arc': self.arc,
            'angle': self.angle,
            'is_spinning': self.is_spinning,
        }


class SpinOutcome:
    """Result of one finished spin; error is set when nothing or a failed write was recorded"""

    def __init__(self, sid, user, angle):
        self.sid = sid
        self.user = user
        self.angle = angle
        self.prize = None
        self.index = None
        self.record = None
        self.error = None

    @property
    def recorded(self):
        return self.record is not None

    def to_dict(self):
        data = {
            'user': self.user,
            'prize': self.prize,
            'index': self.index,
            'angle': self.angle,
            'recorded': self.recorded,
            'record': self.record.to_dict() if self.record else None,
        }
        if self.error is not None:
            data.update(self.error.to_payload())
        return data


class WheelController:
    def __init__(self, config_store, record_store, config, scheduler, rng=None):
        self.config = config
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.record_store = record_store
        self.sync = ConfigSync(config_store, config['default_items'])
        self.enforcer = UniquenessEnforcer(record_store)
        self.sessions = {}
        self._lock = threading.RLock()

        self.total_spins_session = 0
        self.active_spins = 0
        self.last_winner = None
        self.performance_metrics = {
            'start_time': time.time(),
            'total_connections': 0,
            'peak_concurrent': 0
        }
        self.sync.add_listener(self._apply_items)

    def start(self):
        self.sync.start()

    def stop(self):
        self.sync.stop()

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------
    def connect(self, sid):
        with self._lock:
            session = Session(sid, self.sync.snapshot())
            self.sessions[sid] = session
            self.performance_metrics['total_connections'] += 1
            self.performance_metrics['peak_concurrent'] = max(
                len(self.sessions),
                self.performance_metrics['peak_concurrent']
            )
            return session

    def disconnect(self, sid):
        """Drop the session; a spin already running still completes and is recorded"""
        with self._lock:
            return self.sessions.pop(sid, None)

    def get_session(self, sid):
        with self._lock:
            session = self.sessions.get(sid)
        if session is None:
            raise NotAuthorized("Session expired. Please reload.")
        return session

    def _apply_items(self, items):
        with self._lock:
            for session in self.sessions.values():
                session.items = list(items)

    # ------------------------------------------------------------------
    # user input
    # ------------------------------------------------------------------
    def login(self, sid, name):
        """Authorize a session for a single spin if name has not played yet"""
        session = self.get_session(sid)
        name = (name or '').strip()
        if not name:
            raise InvalidName()
        if session.has_played:
            raise AlreadyPlayed()

        check = self.enforcer.may_play(name)
        if check is PlayCheck.CONNECTION_ERROR:
            raise AuthCheckFailed()
        if check is PlayCheck.ALREADY_PLAYED or self.enforcer.is_claimed(name):
            logging.info(f"🚫 Login refused, '{name}' has already played")
            raise AlreadyPlayed()

        with self._lock:
            session.name = name
            session.authorized = True
        logging.info(f"👋 Participant logged in: {name} ({sid})")
        return session

    def shuffle(self, sid):
        session = self.get_session(sid)
        with self._lock:
            if session.is_spinning:
                raise AlreadySpinning()
            self.rng.shuffle(session.items)
            return list(session.items)

    def edit_items(self, sid, text):
        """
        Replace the session's local list for display only.

        Results always come from the published list, so a session with edits
        cannot spin until it restores them or the next config update overwrites them.
        """
        session = self.get_session(sid)
        with self._lock:
            if session.is_spinning:
                raise AlreadySpinning()
            session.items = parse_items(text)
            return list(session.items)

    def restore_items(self, sid):
        """Drop local edits and go back to the published list"""
        session = self.get_session(sid)
        with self._lock:
            if session.is_spinning:
                raise AlreadySpinning()
            session.items = self.sync.snapshot()
            return list(session.items)

    def start_spin(self, sid, on_start=None, on_frame=None, on_complete=None):
        """idle -> spinning for one session; returns the new SpinState"""
        session = self.get_session(sid)
        with self._lock:
            if session.is_spinning:
                raise AlreadySpinning()
            if not session.authorized or not session.name:
                raise NotAuthorized()
            if not session.items:
                raise EmptyWheel()
            if not _is_reordering(session.items, self.sync.snapshot()):
                raise UnpublishedItems()

            self.enforcer.claim(session.name)
            try:
                spin = SpinState.draw(
                    len(session.items),
                    (self.config['spin_duration_ms_min'], self.config['spin_duration_ms_max']),
                    (self.config['spin_velocity_min'], self.config['spin_velocity_max']),
                    tick_ms=self.config['tick_ms'],
                    start_angle=session.angle,
                    rng=self.rng,
                )
            except ValueError:
                self.enforcer.release(session.name)
                raise
            session.spin = spin
            session.authorized = False
            session.has_played = True
            self.total_spins_session += 1
            self.active_spins += 1
            spin_number = self.total_spins_session

        logging.info(f"🎲 Spin #{spin_number} STARTED for {session.name} ({spin.total:.0f}ms)")
        if on_start is not None:
            try:
                on_start(spin, spin_number)
            except Exception as e:
                logging.error(f"💥 Spin start callback error: {e}")

        def complete(finished):
            outcome = self._complete(session, finished)
            if on_complete is not None:
                on_complete(outcome)

        self.scheduler.run(spin, on_frame=on_frame, on_complete=complete)
        return spin

    def _complete(self, session, spin):
        angle = spin.take_final_angle()
        with self._lock:
            items = list(session.items)
            session.angle = angle
            session.spin = None
            self.active_spins = max(0, self.active_spins - 1)

        outcome = SpinOutcome(sid=session.sid, user=session.name, angle=angle)
        try:
            outcome.index = slice_index(angle, len(items), spin.arc)
        except EmptyWheel as e:
            self.enforcer.release(session.name)
            logging.error(f"⌘ Spin for {session.name} ended on an empty wheel, nothing recorded")
            outcome.error = e
            return outcome

        outcome.prize = items[outcome.index]
        with self._lock:
            self.last_winner = outcome.prize
        logging.info(f"🏆 {session.name} landed on '{outcome.prize}' (slice {outcome.index + 1}/{len(items)})")

        try:
            outcome.record = self.enforcer.commit(PlayRecord(user=session.name, result=outcome.prize))
        except (WriteFailed, DuplicateRecord) as e:
            logging.error(f"💥 Result for {session.name} not recorded: {e}")
            outcome.error = e
        return outcome

    def get_status(self):
        with self._lock:
            return {
                'connected_clients': len(self.sessions),
                'logged_in': sum(1 for s in self.sessions.values() if s.name),
                'active_spins': self.active_spins,
                'total_spins': self.total_spins_session,
                'last_winner': self.last_winner,
                'item_count': len(self.sync.items),
                'using_default_items': self.sync.using_defaults,
                'uptime_seconds': time.time() - self.performance_metrics['start_time'],
                'total_connections': self.performance_metrics['total_connections'],
                'peak_concurrent': self.performance_metrics['peak_concurrent'],
            }
