#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Cancellation and deadline signal threaded through every operation.

A RunContext is shared by all tasks of one pipeline run. Network clients clamp
their timeouts to the remaining deadline and sleep on the context instead of
time.sleep, so cancel() unblocks back-offs and pacing delays immediately.
"""
from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import Cancelled


class RunContext:
    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline: Optional[float] = None
        if timeout is not None:
            self._deadline = time.monotonic() + max(0.0, float(timeout))
        self._reason = "cancelled"

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._reason = "deadline exceeded"
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None if unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def clamp_timeout(self, timeout: float) -> float:
        rem = self.remaining()
        if rem is None:
            return timeout
        return max(0.001, min(timeout, rem))

    def check(self) -> None:
        """Raise Cancelled if the run was cancelled or the deadline passed."""
        if self.cancelled:
            raise Cancelled(self._reason)

    def wait(self, delay: float) -> None:
        """Sleep up to delay seconds; raise Cancelled if interrupted."""
        if delay > 0:
            rem = self.remaining()
            self._event.wait(delay if rem is None else min(delay, rem))
        self.check()


def background() -> RunContext:
    """Context that is never cancelled and has no deadline."""
    return RunContext()
