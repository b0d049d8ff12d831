"""
Per-bracket critical section.

Every read-modify-write on a bracket (winner propagation, the "is the
bracket complete" check, result creation) runs inside
`bracket_transaction`. Two layers serialise writers:

- an in-process lock per bracket id (FastAPI runs sync handlers on a
  thread pool, so concurrent score reports land on different threads)
- SELECT ... FOR UPDATE on the bracket row, which serialises writers
  across processes on Postgres (SQLite ignores it; its database-level
  write lock plus the in-process lock cover single-process deployments)

The transaction commits before the lock is released and rolls back on any
exception, so multi-row effects are all-or-nothing.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket
from dojo_tournaments.services.errors import NotFound


class BracketLockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def lock_for(self, bracket_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(bracket_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[bracket_id] = lock
            return lock

    def discard(self, bracket_id: int) -> None:
        with self._guard:
            self._locks.pop(bracket_id, None)


registry = BracketLockRegistry()


def load_bracket_for_update(session: Session, bracket_id: int) -> Bracket:
    bracket = session.exec(
        select(Bracket)
        .where(Bracket.id == bracket_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if not bracket:
        raise NotFound("Bracket not found", bracket_id=bracket_id)
    return bracket


@contextmanager
def bracket_transaction(session: Session, bracket_id: int) -> Iterator[Bracket]:
    """Hold the bracket's critical section for the duration of the block."""
    with registry.lock_for(bracket_id):
        try:
            bracket = load_bracket_for_update(session, bracket_id)
            yield bracket
            session.commit()
        except Exception:
            session.rollback()
            raise
