"""
Spin state machine and the tick scheduler that drives it.

A spin is fully determined by two random draws (total duration and start
velocity). Elapsed time advances by a fixed tick, not by wall-clock time, so the
final angle does not depend on how late any individual tick fires.
"""
import logging
import math
import random

from .errors import EmptyWheel


def ease_out(t, b, c, d):
    """Cubic ease-out from b (t=0) to b+c (t=d)"""
    t = t / d
    ts = t * t
    tc = ts * t
    return b + c * (tc + -3 * ts + 3 * t)


def draw_uniform(rng, low, high):
    """Uniform draw in [low, high)"""
    if high <= low:
        return low
    value = low + rng.random() * (high - low)
    return value if value < high else math.nextafter(high, low)


class SpinState:
    def __init__(self, item_count, duration_ms, start_velocity, tick_ms=30, start_angle=0.0):
        if item_count <= 0:
            raise EmptyWheel()
        if duration_ms <= 0 or tick_ms <= 0:
            raise ValueError("Spin duration and tick must be positive")
        self.item_count = item_count
        self.arc = math.pi * 2 / item_count
        self.angle = start_angle
        self.start_velocity = start_velocity
        self.total = duration_ms
        self.tick_ms = tick_ms
        self.elapsed = 0
        self.spinning = True
        self._final_taken = False

    @classmethod
    def draw(cls, item_count, duration_range, velocity_range, tick_ms=30, start_angle=0.0, rng=None):
        """Start a spin with duration and velocity drawn from the configured ranges"""
        rng = rng or random
        duration_ms = draw_uniform(rng, *duration_range)
        start_velocity = draw_uniform(rng, *velocity_range)
        return cls(item_count, duration_ms, start_velocity, tick_ms=tick_ms, start_angle=start_angle)

    @property
    def progress(self):
        return min(self.elapsed / self.total, 1.0)

    def velocity(self, elapsed=None):
        """Degrees added per tick at the given elapsed time; 0 once the spin is over"""
        elapsed = self.elapsed if elapsed is None else elapsed
        if elapsed >= self.total:
            return 0.0
        return self.start_velocity - ease_out(elapsed, 0, self.start_velocity, self.total)

    def advance(self):
        """One tick. Returns False once the spin has terminated"""
        if not self.spinning:
            return False
        self.elapsed += self.tick_ms
        if self.elapsed >= self.total:
            self.spinning = False
            return False
        self.angle += self.velocity() * math.pi / 180
        return True

    def projected_angle(self):
        """Final angle this spin will stop at, without advancing it"""
        angle = self.angle
        elapsed = self.elapsed
        while self.spinning:
            elapsed += self.tick_ms
            if elapsed >= self.total:
                break
            angle += self.velocity(elapsed) * math.pi / 180
        return angle

    def take_final_angle(self):
        """Hand the terminal angle to the resolver; only the first call gets it"""
        if self.spinning:
            raise RuntimeError("Spin is still running")
        if self._final_taken:
            return None
        self._final_taken = True
        return self.angle


class TickScheduler:
    """
    Fixed-interval loop advancing a SpinState until it terminates.

    start_task launches the loop (a Socket.IO background task in the server) and
    sleep yields between ticks. Frame callbacks only affect what clients see;
    on_complete always runs once the spin has terminated.
    """

    def __init__(self, start_task, sleep):
        self.start_task = start_task
        self.sleep = sleep

    def run(self, spin, on_frame=None, on_complete=None):
        return self.start_task(self._loop, spin, on_frame, on_complete)

    def _loop(self, spin, on_frame, on_complete):
        interval = spin.tick_ms / 1000.0
        while spin.advance():
            if on_frame is not None:
                try:
                    on_frame(spin)
                except Exception as e:
                    logging.error(f"💥 Spin frame callback error: {e}")
            self.sleep(interval)
        if on_complete is not None:
            on_complete(spin)
