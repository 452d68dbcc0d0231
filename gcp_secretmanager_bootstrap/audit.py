# -*- coding: utf-8 -*-
"""Structured audit events for bootstrap steps and credential operations.

Each attempt of an operation emits exactly one event. Events go to the
``gcp_secretmanager_bootstrap.audit`` logger as json and to any registered sink so
an external collector can pick them up. Secret material is never part of an event.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

AUDIT_LOGGER = "gcp_secretmanager_bootstrap.audit"

SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class AuditEvent:
    operation: str
    target: str
    outcome: str
    timestamp: datetime
    detail: dict = field(default_factory=dict)

    def to_dict(self):
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditLog:
    """Fan out of audit events to the audit logger and registered sinks.

    :type clock: callable
    :param clock: returns the current aware datetime used to stamp events
    """

    def __init__(self, clock=None, sinks=None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._sinks = list(sinks or [])

    def add_sink(self, sink):
        with self._lock:
            self._sinks.append(sink)

    def emit(self, operation, target, outcome, **detail):
        event = AuditEvent(operation=operation,
                           target=target,
                           outcome=outcome,
                           timestamp=self._clock(),
                           detail=detail)
        logging.getLogger(AUDIT_LOGGER).info(json.dumps(event.to_dict(), default=str))
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            try:
                sink(event)
            except Exception:
                # a broken collector must not fail the audited operation
                logging.getLogger(__name__).exception(f"Audit sink {sink!r} failed")
        return event


class RecordingSink:
    """Sink keeping events in memory, handy for tests and local inspection."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def operations(self):
        return [event.operation for event in self.events]
