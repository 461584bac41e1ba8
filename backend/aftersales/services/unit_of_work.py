"""Transaction boundary for every mutating operation.

    with UnitOfWork(session_factory, recorder, sink) as uow:
        ledger.reserve(uow, part_id, request_id, 2, actor)

The block runs in one database transaction. History entries and notification
intents staged on the unit of work are published only after that transaction
commits; a rolled-back operation publishes nothing.
"""
from __future__ import annotations
import logging
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from aftersales.errors import ConflictError

logger = logging.getLogger(__name__)


class UnitOfWork:
    def __init__(self, session_factory: Callable[[], Session], recorder=None, sink=None):
        self.session_factory = session_factory
        self.recorder = recorder
        self.sink = sink
        self.session: Optional[Session] = None
        self._history: List = []
        self._intents: List = []

    def __enter__(self) -> 'UnitOfWork':
        self.session = self.session_factory()
        self.session.begin()
        self._history = []
        self._intents = []
        return self

    def __exit__(self, exc_type, exc, tb):
        session = self.session
        try:
            if exc_type is None:
                try:
                    session.commit()
                except StaleDataError as e:
                    session.rollback()
                    raise ConflictError() from e
            else:
                session.rollback()
                if issubclass(exc_type, StaleDataError):
                    raise ConflictError() from exc
        finally:
            session.close()
        if exc_type is None:
            self._publish()
        else:
            self._history, self._intents = [], []
        return False

    def stage_history(self, entry) -> None:
        self._history.append(entry)

    def notify(self, intent) -> None:
        self._intents.append(intent)

    @property
    def staged_intents(self) -> list:
        return list(self._intents)

    def _publish(self) -> None:
        history, intents = self._history, self._intents
        self._history, self._intents = [], []
        if self.recorder is not None:
            for entry in history:
                self.recorder.record(entry)
        if self.sink is not None:
            for intent in intents:
                try:
                    self.sink.deliver(intent)
                except Exception:
                    # delivery is fire-and-forget; the committed operation stands
                    logger.exception('Notification delivery failed for user %s', intent.recipient_user_id)


__all__ = ['UnitOfWork']
