"""
Concurrent score reports against one bracket.

Runs on a file-backed SQLite database so every thread gets its own
connection, like the app's thread pool does.
"""
import threading
from datetime import date, datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.event import Event
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.participant import Participant
from dojo_tournaments.models.result import Result
from dojo_tournaments.services.bracket_builder import generate_event_brackets
from dojo_tournaments.services.errors import BracketEngineError, InvalidTransition
from dojo_tournaments.services.match_progression import record_outcome


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _seed(engine, n):
    with Session(engine) as s:
        event = Event(name="Race Cup", start_date=date(2026, 6, 13), end_date=date(2026, 6, 13))
        s.add(event)
        s.commit()
        s.refresh(event)
        for i in range(n):
            s.add(
                Participant(
                    event_id=event.id,
                    user_id=f"R-{i + 1}",
                    name=f"R{i + 1}",
                    date_of_birth=date(2000, 1, 1),
                    weight_kg=65,
                    registered_at=datetime(2026, 5, 1) + timedelta(minutes=i),
                )
            )
        s.commit()
        bracket_id = generate_event_brackets(s, event.id).brackets[0].id
    return bracket_id


def _run_concurrently(engine, jobs):
    """Run (match_id, winner_id) reports on separate threads and sessions."""
    barrier = threading.Barrier(len(jobs))
    outcomes = [None] * len(jobs)

    def worker(i, match_id, winner_id):
        with Session(engine) as s:
            barrier.wait()
            try:
                outcomes[i] = record_outcome(s, match_id, winner_id).bracket_status
            except BracketEngineError as exc:
                outcomes[i] = exc

    threads = [threading.Thread(target=worker, args=(i, *job)) for i, job in enumerate(jobs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def _matches(engine, bracket_id):
    with Session(engine) as s:
        rows = s.exec(
            select(Match).where(Match.bracket_id == bracket_id).order_by(Match.round_number, Match.match_number)
        ).all()
        return [(m.id, m.fighter_a_id, m.fighter_b_id) for m in rows]


def test_parallel_semifinals_both_reach_final(file_engine):
    bracket_id = _seed(file_engine, 4)
    (s1, a1, _), (s2, a2, _), (final_id, _, _) = _matches(file_engine, bracket_id)

    outcomes = _run_concurrently(file_engine, [(s1, a1), (s2, a2)])
    assert not any(isinstance(o, Exception) for o in outcomes)

    with Session(file_engine) as s:
        final = s.get(Match, final_id)
        assert (final.fighter_a_id, final.fighter_b_id) == (a1, a2)
        assert final.status == MatchStatus.SCHEDULED
        assert s.get(Bracket, bracket_id).status == BracketStatus.IN_PROGRESS
        assert s.exec(select(Result).where(Result.bracket_id == bracket_id)).all() == []


def test_duplicate_final_reports_derive_once(file_engine):
    bracket_id = _seed(file_engine, 4)
    (s1, a1, _), (s2, a2, _), (final_id, _, _) = _matches(file_engine, bracket_id)
    with Session(file_engine) as s:
        record_outcome(s, s1, a1)
        record_outcome(s, s2, a2)

    # Two tables report the final at once, with different winners
    outcomes = _run_concurrently(file_engine, [(final_id, a1), (final_id, a2), (final_id, a1)])

    completed = [o for o in outcomes if o == BracketStatus.COMPLETED.value]
    rejected = [o for o in outcomes if isinstance(o, InvalidTransition)]
    assert len(completed) == 1
    assert len(rejected) == 2

    with Session(file_engine) as s:
        bracket = s.get(Bracket, bracket_id)
        assert bracket.status == BracketStatus.COMPLETED
        final = s.get(Match, final_id)
        assert final.status == MatchStatus.COMPLETED
        results = s.exec(select(Result).where(Result.bracket_id == bracket_id)).all()
        assert len(results) == 4
        gold = [r for r in results if r.final_rank == 1]
        assert [r.participant_id for r in gold] == [final.winner_id]


def test_many_brackets_progress_independently(file_engine):
    first = _seed(file_engine, 2)
    second = _seed(file_engine, 2)
    ((m1, a1, _),) = _matches(file_engine, first)
    ((m2, _, b2),) = _matches(file_engine, second)

    outcomes = _run_concurrently(file_engine, [(m1, a1), (m2, b2)])
    assert outcomes == [BracketStatus.COMPLETED.value, BracketStatus.COMPLETED.value]
