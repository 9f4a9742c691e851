from pathlib import Path

from openpyxl import load_workbook

from codearena.models.submission import SubmissionState
from codearena.services.excel_service import excel_service
from codearena.services.leaderboard import LeaderboardService


def test_contest_report_contains_standings_and_statistics(database, db, arena, tmp_path):
    contest = arena.contest(title="Spring Open")
    problem = arena.problem(contest, max_score=100)
    alice, bob = arena.user("alice"), arena.user("bob")
    arena.join(contest, alice, score=100, solved=1)
    arena.join(contest, bob, score=40)
    arena.submission(alice, problem, state=SubmissionState.ACCEPTED, score=100, passed_count=3, total_count=3)
    arena.submission(bob, problem, state=SubmissionState.WRONG_ANSWER, score=40, passed_count=1, total_count=3)

    path = excel_service.generate_contest_report(db, LeaderboardService(database), contest.id, str(tmp_path))

    assert Path(path).parent == tmp_path / "contests"
    wb = load_workbook(path)
    assert wb.sheetnames == ["Leaderboard", "Submissions", "Statistics"]

    standings = list(wb["Leaderboard"].iter_rows(min_row=2, values_only=True))
    assert [row[:4] for row in standings] == [(1, "alice", 100, 1), (2, "bob", 40, 0)]

    submissions = list(wb["Submissions"].iter_rows(min_row=2, values_only=True))
    assert [(row[1], row[4], row[6]) for row in submissions] == [
        ("alice", "Accepted", "3/3"),
        ("bob", "WrongAnswer", "1/3"),
    ]

    stats = wb["Statistics"]
    assert stats["A1"].value == "Spring Open - Contest Statistics"
    assert [c.value for c in stats[4]] == ["Echo", 2, 1, 70.0, 100]
