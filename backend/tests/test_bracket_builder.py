"""
Tests for bracket layout and persistence: fold seeding, byes, forward links,
event-wide generation.
"""
import pytest
from sqlmodel import Session, select

from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.models.match import Match, MatchStatus
from dojo_tournaments.models.participant import ApprovalStatus, Participant
from dojo_tournaments.services.bracket_builder import (
    bracket_fold_positions,
    build_bracket,
    generate_event_brackets,
    next_power_of_two,
    plan_bracket,
    round_name,
)
from dojo_tournaments.services.bracket_lock import registry as bracket_locks
from dojo_tournaments.services.category_classifier import CategoryKey
from dojo_tournaments.services.errors import InsufficientParticipants, InvalidTransition, NotFound


class TestBracketFoldPositions:
    def test_2_entries(self):
        assert bracket_fold_positions(2) == [1, 2]

    def test_4_entries(self):
        assert bracket_fold_positions(4) == [1, 4, 2, 3]

    def test_8_entries(self):
        assert bracket_fold_positions(8) == [1, 8, 4, 5, 3, 6, 2, 7]

    def test_all_seeds_present(self):
        for n in (2, 4, 8, 16, 32):
            assert sorted(bracket_fold_positions(n)) == list(range(1, n + 1))

    def test_first_round_pairs_sum(self):
        positions = bracket_fold_positions(16)
        for i in range(0, 16, 2):
            assert positions[i] + positions[i + 1] == 17


class TestRoundNames:
    def test_labels(self):
        assert round_name(4, 4) == "Final"
        assert round_name(3, 4) == "Semi Finals"
        assert round_name(2, 4) == "Quarter Finals"
        assert round_name(1, 4) == "Round 1"

    def test_two_entrant_bracket(self):
        assert round_name(1, 1) == "Final"


class TestPlanBracket:
    def test_power_of_two(self):
        assert [next_power_of_two(n) for n in (2, 3, 5, 8, 9)] == [2, 4, 8, 8, 16]

    def test_eight_entrants(self):
        plan = plan_bracket(list(range(1, 9)))
        assert plan.bracket_size == 8
        assert plan.total_rounds == 3
        per_round = [sum(1 for m in plan.matches if m.round_number == r) for r in (1, 2, 3)]
        assert per_round == [4, 2, 1]
        assert plan.bye_recipients == []
        first = [(m.fighter_a, m.fighter_b) for m in plan.matches if m.round_number == 1]
        assert first == [(1, 8), (4, 5), (3, 6), (2, 7)]

    def test_five_entrants_byes_go_to_top_seeds(self):
        plan = plan_bracket([11, 12, 13, 14, 15])
        assert len(plan.matches) == 4
        assert sorted(plan.bye_recipients) == [11, 12, 13]
        round_one = [m for m in plan.matches if m.round_number == 1]
        assert [(m.fighter_a, m.fighter_b) for m in round_one] == [(14, 15)]
        round_two = [m for m in plan.matches if m.round_number == 2]
        assert [(m.fighter_a, m.fighter_b) for m in round_two] == [(11, None), (13, 12)]
        # Seed 4 vs 5 feeds the empty slot next to seed 1
        assert plan.matches[round_one[0].next_index] is round_two[0]
        assert round_one[0].next_slot == "B"

    def test_three_entrants(self):
        plan = plan_bracket([1, 2, 3])
        assert len(plan.matches) == 2
        assert plan.bye_recipients == [1]
        assert (plan.final.fighter_a, plan.final.fighter_b) == (1, None)

    def test_two_entrants_is_just_a_final(self):
        plan = plan_bracket([7, 9])
        assert len(plan.matches) == 1
        assert plan.final.round_number == 1
        assert plan.final.next_index is None

    @pytest.mark.parametrize("n", [2, 3, 5, 6, 7, 8, 9, 13, 16, 17])
    def test_match_count_and_single_final(self, n):
        plan = plan_bracket(list(range(1, n + 1)))
        assert len(plan.matches) == n - 1
        adjacency = plan.adjacency()
        assert list(adjacency.values()).count(None) == 1
        for index, nxt in adjacency.items():
            if nxt is not None:
                assert plan.matches[nxt].round_number == plan.matches[index].round_number + 1

    def test_every_entrant_plays(self):
        plan = plan_bracket(list(range(1, 7)))
        placed = {fid for m in plan.matches for fid in (m.fighter_a, m.fighter_b) if fid is not None}
        assert placed == set(range(1, 7))

    @pytest.mark.parametrize("entrants", [[], [1]])
    def test_too_few(self, entrants):
        with pytest.raises(InsufficientParticipants):
            plan_bracket(entrants)


class TestBuildBracket:
    def test_persists_bracket_and_links(self, session: Session, event, add_participants):
        people = add_participants(event, 5)
        bracket = build_bracket(session, event.id, CategoryKey("18-35", "60-70kg"), people)

        assert bracket.status == BracketStatus.PENDING
        assert bracket.category_name == "18-35, 60-70kg, Open"
        assert (bracket.total_participants, bracket.bracket_size, bracket.total_rounds) == (5, 8, 3)

        matches = session.exec(select(Match).where(Match.bracket_id == bracket.id)).all()
        assert len(matches) == 4
        assert all(m.status == MatchStatus.SCHEDULED for m in matches)
        by_id = {m.id: m for m in matches}
        finals = [m for m in matches if m.next_match_id is None]
        assert len(finals) == 1
        assert finals[0].round_name == "Final"
        for m in matches:
            if m.next_match_id is not None:
                assert by_id[m.next_match_id].round_number == m.round_number + 1
                assert m.next_match_slot in ("A", "B")

        # Seed 1 (first registrant) holds a round-2 slot through the bye
        semi = next(m for m in matches if m.round_number == 2 and m.match_number == 1)
        assert semi.fighter_a_id == people[0].id
        assert semi.fighter_b_id is None


class TestGenerateEventBrackets:
    def test_one_bracket_per_category(self, session: Session, event, add_participants):
        add_participants(event, 4, age=25, weight_kg=65, prefix="A")
        add_participants(event, 3, age=10, weight_kg=30, prefix="J")

        report = generate_event_brackets(session, event.id)

        names = sorted(b.category_name for b in report.brackets)
        assert names == ["18-35, 60-70kg, Open", "Under 12, Under 35kg, Open"]
        total_matches = len(session.exec(select(Match)).all())
        assert total_matches == (4 - 1) + (3 - 1)
        participants = session.exec(select(Participant)).all()
        assert all(p.category_age for p in participants)

    def test_only_approved_are_bracketed(self, session: Session, event, add_participants):
        people = add_participants(event, 4)
        people[3].approval_status = ApprovalStatus.PENDING
        session.add(people[3])
        session.commit()

        report = generate_event_brackets(session, event.id)
        assert report.brackets[0].total_participants == 3

    def test_excluded_and_skipped_are_reported(self, session: Session, event, add_participants):
        add_participants(event, 2)
        add_participants(event, 1, age=50, weight_kg=90, prefix="V")
        loner = add_participants(event, 1, prefix="X")[0]
        loner.weight_kg = None
        session.add(loner)
        session.commit()

        report = generate_event_brackets(session, event.id)
        assert len(report.brackets) == 1
        assert [e.participant_id for e in report.excluded] == [loner.id]
        assert [s.category_name for s in report.skipped] == ["36+, 70kg+, Open"]

    def test_regenerate_replaces_pending_brackets(self, session: Session, event, add_participants):
        add_participants(event, 4)
        generate_event_brackets(session, event.id)

        second = generate_event_brackets(session, event.id)
        brackets = session.exec(select(Bracket).where(Bracket.event_id == event.id)).all()
        assert len(brackets) == 1
        assert len(session.exec(select(Match)).all()) == 3
        assert second.brackets[0].id == brackets[0].id

    def test_regenerate_refused_after_start(self, session: Session, event, add_participants):
        add_participants(event, 4)
        report = generate_event_brackets(session, event.id)
        bracket = report.brackets[0]
        bracket.status = BracketStatus.IN_PROGRESS
        session.add(bracket)
        session.commit()

        with pytest.raises(InvalidTransition):
            generate_event_brackets(session, event.id)
        assert len(session.exec(select(Match)).all()) == 3

    def test_no_approved_participants(self, session: Session, event):
        with pytest.raises(InsufficientParticipants):
            generate_event_brackets(session, event.id)

    def test_unknown_event(self, session: Session):
        with pytest.raises(NotFound):
            generate_event_brackets(session, 999)

    def test_registration_order_is_seed_order(self, session: Session, event, add_participants):
        people = add_participants(event, 4)
        generate_event_brackets(session, event.id)
        first_round = session.exec(
            select(Match).where(Match.round_number == 1).order_by(Match.match_number)
        ).all()
        # 4-entry fold: 1v4, 2v3
        assert (first_round[0].fighter_a_id, first_round[0].fighter_b_id) == (people[0].id, people[3].id)
        assert (first_round[1].fighter_a_id, first_round[1].fighter_b_id) == (people[1].id, people[2].id)


class TestBracketLocksOnRegeneration:
    def test_locks_of_removed_brackets_are_released(self, session: Session, event, add_participants):
        add_participants(event, 2, prefix="A")
        juniors = add_participants(event, 2, age=10, weight_kg=30, prefix="J")
        old_ids = [b.id for b in generate_event_brackets(session, event.id).brackets]
        for bracket_id in old_ids:
            bracket_locks.lock_for(bracket_id)

        for p in juniors:
            p.approval_status = ApprovalStatus.REJECTED
            session.add(p)
        session.commit()
        new_ids = {b.id for b in generate_event_brackets(session, event.id).brackets}

        assert len(new_ids) == 1
        for bracket_id in set(old_ids) - new_ids:
            assert bracket_id not in bracket_locks._locks
