import pytest

from codearena.api.v1 import users as user_routes
from codearena.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from codearena.models.submission import SubmissionState
from codearena.schemas.user import UserRole


def _problem(arena, db, difficulty):
    problem = arena.problem()
    problem.difficulty = difficulty
    db.commit()
    return problem


def _rank(db, participant, rank):
    participant.rank = rank
    db.commit()


def _list(db, viewer, **overrides):
    params = dict(role=None, sort_by="solved", limit=100, offset=0)
    params.update(overrides)
    return user_routes.list_users(current_user=viewer, db=db, **params)


def test_profile_counts_distinct_solved_problems(db, arena):
    alice = arena.user("alice")
    bob = arena.user("bob")
    problem = arena.problem()
    arena.submission(alice, problem, state=SubmissionState.ACCEPTED, score=100)
    arena.submission(alice, problem, state=SubmissionState.ACCEPTED, score=100)
    arena.submission(alice, arena.problem(), state=SubmissionState.WRONG_ANSWER)

    profile = user_routes.get_user_profile(alice.id, current_user=bob, db=db)

    assert profile.username == "alice"
    assert (profile.total_solved, profile.total_submissions) == (1, 3)


def test_stats_break_down_difficulty_languages_and_finishes(db, arena):
    alice = arena.user("alice")
    easy = _problem(arena, db, "Easy")
    medium = _problem(arena, db, "Medium")
    hard = _problem(arena, db, "Hard")
    arena.submission(alice, easy, state=SubmissionState.ACCEPTED, language="python")
    arena.submission(alice, easy, state=SubmissionState.ACCEPTED, language="python")
    arena.submission(alice, medium, state=SubmissionState.ACCEPTED, language="cpp")
    arena.submission(alice, medium, state=SubmissionState.WRONG_ANSWER, language="cpp")
    arena.submission(alice, hard, state=SubmissionState.TIME_LIMIT_EXCEEDED, language="python")

    podium = arena.join(arena.contest(title="Podium"), alice)
    _rank(db, podium, 2)
    midfield = arena.join(arena.contest(title="Midfield"), alice)
    _rank(db, midfield, 5)
    arena.join(arena.contest(title="Unranked"), alice)

    stats = user_routes.get_user_stats(alice.id, current_user=alice, db=db)

    assert stats.total_submissions == 5
    assert stats.accepted_submissions == 3
    assert stats.total_solved == 2
    assert stats.difficulty_breakdown == {"easy": 1, "medium": 1, "hard": 0}
    assert [(u.language, u.count) for u in stats.language_usage] == [("python", 3), ("cpp", 2)]
    assert stats.contests_participated == 3
    assert stats.top3_finishes == 1


def test_stats_for_new_user_are_zero(db, arena):
    alice = arena.user("alice")

    stats = user_routes.get_user_stats(alice.id, current_user=alice, db=db)

    assert stats.difficulty_breakdown == {"easy": 0, "medium": 0, "hard": 0}
    assert stats.language_usage == []
    assert (stats.total_submissions, stats.contests_participated, stats.top3_finishes) == (0, 0, 0)


def test_unknown_user_is_not_found(db, arena):
    viewer = arena.user("viewer")

    with pytest.raises(ResourceNotFoundError):
        user_routes.get_user_stats(999, current_user=viewer, db=db)
    with pytest.raises(ResourceNotFoundError):
        user_routes.get_user_profile(999, current_user=viewer, db=db)


def test_submission_history_is_private_to_owner_and_admins(db, arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")
    bob = arena.user("bob")
    problem = arena.problem()
    first = arena.submission(alice, problem)
    second = arena.submission(alice, problem)
    arena.submission(bob, problem)

    own = user_routes.list_user_submissions(alice.id, limit=50, offset=0, current_user=alice, db=db)
    assert own.total == 2
    assert [s.id for s in own.submissions] == [second.id, first.id]

    audited = user_routes.list_user_submissions(alice.id, limit=1, offset=0, current_user=admin, db=db)
    assert audited.total == 2
    assert len(audited.submissions) == 1

    with pytest.raises(AuthorizationError):
        user_routes.list_user_submissions(alice.id, limit=50, offset=0, current_user=bob, db=db)


def test_directory_sorts_by_solved_and_counts_all_matches(db, arena):
    arena.user("root", role="admin")
    alice, bob, carol = arena.user("alice"), arena.user("bob"), arena.user("carol")
    first, second = arena.problem(), arena.problem()
    arena.submission(alice, first, state=SubmissionState.ACCEPTED)
    arena.submission(alice, second, state=SubmissionState.ACCEPTED)
    arena.submission(carol, first, state=SubmissionState.ACCEPTED)
    arena.submission(bob, first, state=SubmissionState.WRONG_ANSWER)

    page = _list(db, bob, role=UserRole.PARTICIPANT, limit=2)

    assert page.total == 3
    assert [(u.username, u.total_solved) for u in page.users] == [("alice", 2), ("carol", 1)]

    by_submissions = _list(db, bob, role=UserRole.PARTICIPANT, sort_by="submissions")
    assert [u.username for u in by_submissions.users] == ["alice", "bob", "carol"]


def test_directory_rejects_unknown_sort_field(db, arena):
    viewer = arena.user("viewer")

    with pytest.raises(ValidationError):
        _list(db, viewer, sort_by="rating")
