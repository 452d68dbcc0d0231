# -*- coding: utf-8 -*-
"""Readiness gate between the bootstrap and application startup.

An orchestrator starts applications only once the gate reports ready, the same
way it would wait on a health check. A failed gate turns ready when a later
reconcile succeeds. Ready is final.
"""

import logging
import threading

from .config import BootstrapSettings


NOT_READY = "not-ready"
READY = "ready"
FAILED = "failed"


class ReadinessGate:

    def __init__(self):
        self._condition = threading.Condition()
        self._state = NOT_READY
        self._error = None

    @property
    def state(self):
        with self._condition:
            return self._state

    @property
    def error(self):
        with self._condition:
            return self._error

    def _settle(self, state, error=None):
        with self._condition:
            if self._state == READY:
                return False
            self._state = state
            self._error = error
            self._condition.notify_all()
        return True

    def mark_ready(self):
        return self._settle(READY)

    def mark_failed(self, error):
        return self._settle(FAILED, error)

    def wait(self, timeout=None):
        """Block until the gate settles or ``timeout`` seconds pass, returning the state."""
        with self._condition:
            self._condition.wait_for(lambda: self._state != NOT_READY, timeout=timeout)
            return self._state

    def check(self):
        """Health check style probe, True only when ready."""
        return self.state == READY


def run_reconcile(bootstrapper, desired_state, gate):
    """Reconcile and settle ``gate`` with the outcome.

    The report is returned on success. On failure the gate is marked failed and
    the error re-raised so the calling process exits non zero.
    """
    try:
        report = bootstrapper.reconcile(desired_state)
    except Exception as e:
        logging.getLogger(__name__).exception(
            f"Bootstrap of role {desired_state.role.name} failed")
        gate.mark_failed(e)
        raise
    gate.mark_ready()
    return report


def wait_until_ready(gate, settings=None):
    """Block application startup until the gate settles.

    Waits at most ``settings.readiness_timeout`` seconds and returns True only when
    the bootstrap succeeded.
    """
    settings = settings or BootstrapSettings.from_environ()
    state = gate.wait(timeout=settings.readiness_timeout)
    if state != READY:
        logging.getLogger(__name__).error(f"Bootstrap not ready, gate is {state}")
    return state == READY
