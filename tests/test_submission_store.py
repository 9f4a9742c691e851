from datetime import timedelta

import pytest

from codearena.core.clock import utcnow
from codearena.core.exceptions import (
    BusinessLogicError,
    InvalidTransitionError,
    RequeueNotAllowedError,
    ResourceNotFoundError,
    ValidationError,
)
from codearena.models.submission import Submission, SubmissionState
from codearena.services.submission_store import submission_store

LANGUAGES = ["python", "cpp"]


def test_create_records_pending_submission(db, arena):
    alice = arena.user("alice")
    contest = arena.contest()
    problem = arena.problem(contest)

    submission = submission_store.create(
        db,
        user_id=alice.id,
        problem_id=problem.id,
        code="print(1)",
        language="python",
        supported_languages=LANGUAGES,
    )

    assert submission.state == "Pending"
    assert submission.contest_id == contest.id
    assert submission.score == 0
    assert submission.attempt == 1


def test_create_rejects_unsupported_language(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()

    with pytest.raises(ValidationError) as exc_info:
        submission_store.create(
            db, user_id=alice.id, problem_id=problem.id, code="x",
            language="brainfuck", supported_languages=LANGUAGES,
        )

    assert exc_info.value.details["field"] == "language"
    assert db.query(Submission).count() == 0


def test_create_rejects_unknown_problem(db, arena):
    alice = arena.user("alice")

    with pytest.raises(ResourceNotFoundError):
        submission_store.create(
            db, user_id=alice.id, problem_id=999, code="x",
            language="python", supported_languages=LANGUAGES,
        )


def test_create_rejects_contest_mismatch(db, arena):
    alice = arena.user("alice")
    contest = arena.contest()
    other = arena.contest(title="Other Round")
    problem = arena.problem(contest)

    with pytest.raises(ValidationError):
        submission_store.create(
            db, user_id=alice.id, problem_id=problem.id, code="x",
            language="python", supported_languages=LANGUAGES, contest_id=other.id,
        )


def test_create_rejects_problem_of_unstarted_contest(db, arena):
    alice = arena.user("alice")
    later = arena.contest(starts_in=timedelta(hours=5))
    problem = arena.problem(later)

    with pytest.raises(ResourceNotFoundError):
        submission_store.create(
            db, user_id=alice.id, problem_id=problem.id, code="x",
            language="python", supported_languages=LANGUAGES,
        )
    assert db.query(Submission).count() == 0

    rehearsal = submission_store.create(
        db, user_id=alice.id, problem_id=problem.id, code="x",
        language="python", supported_languages=LANGUAGES, is_admin=True,
    )
    assert rehearsal.contest_id == later.id


def test_transition_sets_timestamps(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem())

    submission_store.transition(db, submission.id, SubmissionState.JUDGING)
    db.expire_all()
    assert db.get(Submission, submission.id).started_at is not None

    submission_store.transition(db, submission.id, SubmissionState.ACCEPTED, {"score": 100})
    db.expire_all()
    stored = db.get(Submission, submission.id)
    assert stored.state == "Accepted"
    assert stored.score == 100
    assert stored.decided_at is not None


def test_terminal_state_is_final(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem(), state=SubmissionState.JUDGING)
    submission_store.transition(db, submission.id, SubmissionState.WRONG_ANSWER, {"score": 30})

    with pytest.raises(InvalidTransitionError) as exc_info:
        submission_store.transition(db, submission.id, SubmissionState.ACCEPTED, {"score": 100})

    assert exc_info.value.current == "WrongAnswer"
    assert exc_info.value.requested == "Accepted"
    db.expire_all()
    assert db.get(Submission, submission.id).score == 30


def test_pending_cannot_skip_judging(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem())

    with pytest.raises(InvalidTransitionError):
        submission_store.transition(db, submission.id, SubmissionState.ACCEPTED)


def test_nothing_moves_back_to_pending(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem(), state=SubmissionState.JUDGING)

    with pytest.raises(InvalidTransitionError):
        submission_store.transition(db, submission.id, SubmissionState.PENDING)


def test_transition_unknown_submission(db):
    with pytest.raises(ResourceNotFoundError):
        submission_store.transition(db, 12345, SubmissionState.JUDGING)


def test_transition_rejects_unknown_fields(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem())

    with pytest.raises(ValueError):
        submission_store.transition(db, submission.id, SubmissionState.JUDGING, {"user_id": 2})


def test_claim_next_takes_oldest_pending(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()
    now = utcnow()
    newer = arena.submission(alice, problem, submitted_at=now)
    older = arena.submission(alice, problem, submitted_at=now - timedelta(minutes=5))
    arena.submission(alice, problem, state=SubmissionState.JUDGING, submitted_at=now - timedelta(hours=1))

    assert submission_store.claim_next(db) == older.id
    assert submission_store.claim_next(db) == newer.id
    assert submission_store.claim_next(db) is None

    db.expire_all()
    assert db.get(Submission, older.id).state == "Judging"


def test_queue_depth_counts_pending_only(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()
    arena.submission(alice, problem)
    arena.submission(alice, problem)
    arena.submission(alice, problem, state=SubmissionState.JUDGING)

    assert submission_store.queue_depth(db) == 2


def test_find_stuck_uses_problem_deadline(db, arena, settings):
    alice = arena.user("alice")
    problem = arena.problem(time_limit_ms=1000)
    now = utcnow()
    deadline = settings.stuck_after_seconds(1000, 3)

    stuck = arena.submission(
        alice, problem, state=SubmissionState.JUDGING,
        started_at=now - timedelta(seconds=deadline + 10),
    )
    arena.submission(
        alice, problem, state=SubmissionState.JUDGING,
        started_at=now - timedelta(seconds=deadline - 10),
    )
    arena.submission(alice, problem, state=SubmissionState.PENDING, submitted_at=now - timedelta(days=1))

    assert [s.id for s in submission_store.find_stuck(db, settings, now=now)] == [stuck.id]


def test_requeue_appends_new_pending_copy(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()
    failed = arena.submission(
        alice, problem, state=SubmissionState.INTERNAL_ERROR,
        needs_requeue=True, error_type="judge_unavailable",
    )

    copy = submission_store.requeue(db, failed.id)

    assert copy.id != failed.id
    assert copy.state == "Pending"
    assert copy.requeued_from_id == failed.id
    assert copy.attempt == 2
    assert copy.code == failed.code
    db.expire_all()
    original = db.get(Submission, failed.id)
    assert original.state == "InternalError"
    assert original.needs_requeue is False


def test_requeue_happens_at_most_once(db, arena):
    alice = arena.user("alice")
    failed = arena.submission(alice, arena.problem(), state=SubmissionState.INTERNAL_ERROR, needs_requeue=True)

    submission_store.requeue(db, failed.id)
    with pytest.raises(BusinessLogicError):
        submission_store.requeue(db, failed.id)

    assert db.query(Submission).count() == 2


@pytest.mark.parametrize("state", [SubmissionState.ACCEPTED, SubmissionState.WRONG_ANSWER, SubmissionState.PENDING])
def test_requeue_only_from_internal_error(db, arena, state):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem(), state=state)

    with pytest.raises(RequeueNotAllowedError):
        submission_store.requeue(db, submission.id)


def test_list_for_user_is_newest_first_and_paged(db, arena):
    alice = arena.user("alice")
    bob = arena.user("bob")
    problem = arena.problem()
    now = utcnow()
    ids = [
        arena.submission(alice, problem, submitted_at=now - timedelta(minutes=m)).id
        for m in (3, 2, 1)
    ]
    arena.submission(bob, problem)

    rows, total = submission_store.list_for_user(db, alice.id, limit=2, offset=0)
    assert total == 3
    assert [r.id for r in rows] == [ids[2], ids[1]]

    rows, _ = submission_store.list_for_user(db, alice.id, limit=2, offset=2)
    assert [r.id for r in rows] == [ids[0]]

    _, everyone = submission_store.list_for_user(db, None)
    assert everyone == 4


def test_list_for_user_filters_by_state(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()
    arena.submission(alice, problem, state=SubmissionState.ACCEPTED, score=100)
    arena.submission(alice, problem)

    rows, total = submission_store.list_for_user(db, alice.id, state="Accepted")
    assert total == 1
    assert rows[0].score == 100

    with pytest.raises(ValidationError):
        submission_store.list_for_user(db, alice.id, state="Exploded")
