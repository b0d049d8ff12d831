"""Check every completed bracket in the configured database against the bracket invariants.

Usage: python verify_results.py [event_id]
Exits non-zero when any bracket has violations.
"""
import sys

from sqlmodel import Session, select

from dojo_tournaments.database import engine
from dojo_tournaments.models.bracket import Bracket, BracketStatus
from dojo_tournaments.services.bracket_invariants import verify_bracket


def main(argv):
    event_id = int(argv[1]) if len(argv) > 1 else None
    failed = 0
    with Session(engine) as s:
        stmt = (
            select(Bracket)
            .where(Bracket.status == BracketStatus.COMPLETED)
            .order_by(Bracket.event_id, Bracket.category_name)
        )
        if event_id is not None:
            stmt = stmt.where(Bracket.event_id == event_id)
        brackets = s.exec(stmt).all()
        print(f"Completed brackets: {len(brackets)}")

        for b in brackets:
            report = verify_bracket(s, b.id)
            mark = "OK " if report.ok else "BAD"
            print(f"  [{mark}] #{b.id} {b.category_name} ({BracketStatus(b.status).value}, {report.matches_checked} matches, {report.results_checked} results)")
            for v in report.violations:
                print(f"        {v.code}: {v.message}")
            if not report.ok:
                failed += 1

    print(f"\n{failed} bracket(s) with violations")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
