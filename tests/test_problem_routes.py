from datetime import timedelta

import pytest

from codearena.api.v1 import problems as problem_routes
from codearena.core.exceptions import ResourceNotFoundError, ValidationError
from codearena.schemas.problem import ProblemCreate, TestCaseCreate


def _problem_payload(**overrides):
    payload = dict(
        title="Sum of Two",
        description="Read two integers and print their sum.",
        difficulty="Easy",
        maxScore=100,
        timeLimitMs=1000,
        memoryLimitMb=128,
        testCases=[
            {"input": "1 2", "expectedOutput": "3", "isSample": True, "points": 0},
            {"input": "5 5", "expectedOutput": "10", "points": 50},
            {"input": "7 8", "expectedOutput": "15", "points": 50},
        ],
    )
    payload.update(overrides)
    return ProblemCreate(**payload)


def test_create_problem_and_expose_only_samples(db, arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")

    created = problem_routes.create_problem(_problem_payload(), current_user=admin, db=db)
    assert created.test_case_count == 3
    assert created.warnings == []

    detail = problem_routes.get_problem(created.problem_id, current_user=alice, db=db)
    assert detail.total_test_cases == 3
    assert [tc.input for tc in detail.sample_test_cases] == ["1 2"]

    everything = problem_routes.list_test_cases(created.problem_id, current_user=admin, db=db)
    assert len(everything) == 3


def test_create_problem_rejects_points_over_budget(db, arena):
    admin = arena.user("root", role="admin")
    payload = _problem_payload(maxScore=60)

    with pytest.raises(ValidationError):
        problem_routes.create_problem(payload, current_user=admin, db=db)


def test_add_test_case_checks_budget(db, arena):
    admin = arena.user("root", role="admin")
    created = problem_routes.create_problem(_problem_payload(), current_user=admin, db=db)

    sample = problem_routes.add_test_case(
        created.problem_id,
        TestCaseCreate(input="0 0", expected_output="0", is_sample=True, points=0),
        current_user=admin,
        db=db,
    )
    assert sample.test_case_id > 0

    with pytest.raises(ValidationError):
        problem_routes.add_test_case(
            created.problem_id,
            TestCaseCreate(input="9 9", expected_output="18", points=1),
            current_user=admin,
            db=db,
        )


def test_list_problems_filters_by_contest(db, arena):
    contest = arena.contest()
    arena.problem(contest)
    arena.problem()

    listed = problem_routes.list_problems(
        contest_id=contest.id, difficulty=None, limit=50, offset=0, current_user=arena.user("alice"), db=db,
    )

    assert [p.contest_id for p in listed] == [contest.id]


def test_unstarted_contest_problems_are_hidden_from_participants(db, arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")
    later = arena.contest(title="Later Round", starts_in=timedelta(hours=5))
    hidden = arena.problem(later)
    practice = arena.problem()

    with pytest.raises(ResourceNotFoundError):
        problem_routes.get_problem(hidden.id, current_user=alice, db=db)
    listed = problem_routes.list_problems(
        contest_id=None, difficulty=None, limit=50, offset=0, current_user=alice, db=db,
    )
    assert [p.id for p in listed] == [practice.id]
    by_contest = problem_routes.list_problems(
        contest_id=later.id, difficulty=None, limit=50, offset=0, current_user=alice, db=db,
    )
    assert by_contest == []

    assert problem_routes.get_problem(hidden.id, current_user=admin, db=db).id == hidden.id
    everything = problem_routes.list_problems(
        contest_id=None, difficulty=None, limit=50, offset=0, current_user=admin, db=db,
    )
    assert {p.id for p in everything} == {hidden.id, practice.id}
