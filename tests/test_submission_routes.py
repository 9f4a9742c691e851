from datetime import timedelta
from types import SimpleNamespace

import pytest

from codearena.api import deps
from codearena.api.v1 import submissions as submission_routes
from codearena.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    RateLimitExceededError,
    RequeueNotAllowedError,
    ResourceNotFoundError,
    ValidationError,
)
from codearena.core.security import create_access_token
from codearena.models.submission import Submission, SubmissionState
from codearena.schemas.submission import SubmissionCreate


class RecordingWorker:
    def __init__(self):
        self.notified = 0

    def notify(self):
        self.notified += 1


def _request(host="127.0.0.1"):
    return SimpleNamespace(client=SimpleNamespace(host=host))


def _submit(db, user, problem, worker=None, language="python", code="print(input())"):
    return submission_routes.create_submission(
        SubmissionCreate(problemId=problem.id, language=language, code=code),
        request=_request(),
        current_user=user,
        db=db,
        worker=worker,
    )


def test_create_submission_returns_pending_without_grading(db, arena):
    alice = arena.user("alice")
    problem = arena.problem()
    worker = RecordingWorker()

    response = _submit(db, alice, problem, worker)

    assert response.status == "Pending"
    assert worker.notified == 1
    stored = db.get(Submission, response.submission_id)
    assert stored.state == "Pending"
    assert stored.user_id == alice.id
    assert response.model_dump(by_alias=True)["submissionId"] == stored.id


def test_create_submission_rejects_unsupported_language(db, arena):
    with pytest.raises(ValidationError):
        _submit(db, arena.user("alice"), arena.problem(), language="cobol")

    assert db.query(Submission).count() == 0


def test_create_submission_rejects_oversized_code(db, arena, monkeypatch):
    monkeypatch.setattr(submission_routes.settings, "MAX_CODE_SIZE", 10)

    with pytest.raises(ValidationError) as exc_info:
        _submit(db, arena.user("alice"), arena.problem(), code="x = 1234567890")

    assert exc_info.value.details["max_bytes"] == 10


def test_create_submission_is_rate_limited(db, arena, monkeypatch):
    monkeypatch.setattr(submission_routes.settings, "SUBMIT_RATE_LIMIT_PER_MINUTE", 2)
    alice = arena.user("alice")
    problem = arena.problem()

    _submit(db, alice, problem)
    _submit(db, alice, problem)
    with pytest.raises(RateLimitExceededError) as exc_info:
        _submit(db, alice, problem)

    assert exc_info.value.status_code == 429
    assert exc_info.value.details["retry_after"] >= 1


def test_get_submission_includes_test_results_for_owner(db, arena):
    alice = arena.user("alice")
    submission = arena.submission(alice, arena.problem(), state=SubmissionState.ACCEPTED, score=100)

    response = submission_routes.get_submission(submission.id, current_user=alice, db=db)

    assert response.status == "Accepted"
    assert response.score == 100
    assert response.test_results == []


def test_other_users_submission_is_forbidden(db, arena):
    alice = arena.user("alice")
    bob = arena.user("bob")
    submission = arena.submission(alice, arena.problem())

    with pytest.raises(AuthorizationError):
        submission_routes.get_submission(submission.id, current_user=bob, db=db)
    with pytest.raises(AuthorizationError):
        submission_routes.get_submission_status(submission.id, current_user=bob, db=db)


def test_admin_can_view_any_submission(db, arena):
    alice = arena.user("alice")
    admin = arena.user("root", role="admin")
    submission = arena.submission(alice, arena.problem())

    response = submission_routes.get_submission_status(submission.id, current_user=admin, db=db)

    assert response.status == "Pending"


def test_missing_submission_is_not_found(db, arena):
    with pytest.raises(ResourceNotFoundError):
        submission_routes.get_submission(404, current_user=arena.user("alice"), db=db)


def test_list_submissions_scopes_to_caller(db, arena):
    alice = arena.user("alice")
    bob = arena.user("bob")
    admin = arena.user("root", role="admin")
    problem = arena.problem()
    arena.submission(alice, problem)
    arena.submission(alice, problem)
    arena.submission(bob, problem)

    own = submission_routes.list_submissions(
        problem_id=None, state=None, user_id=None, limit=50, offset=0, current_user=alice, db=db,
    )
    assert own.total == 2

    with pytest.raises(AuthorizationError):
        submission_routes.list_submissions(
            problem_id=None, state=None, user_id=bob.id, limit=50, offset=0, current_user=alice, db=db,
        )

    everyone = submission_routes.list_submissions(
        problem_id=None, state=None, user_id=None, limit=50, offset=0, current_user=admin, db=db,
    )
    assert everyone.total == 3

    bobs = submission_routes.list_submissions(
        problem_id=None, state=None, user_id=bob.id, limit=50, offset=0, current_user=admin, db=db,
    )
    assert bobs.total == 1


def test_requeue_route_creates_new_pending_submission(db, arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")
    failed = arena.submission(alice, arena.problem(), state=SubmissionState.INTERNAL_ERROR, needs_requeue=True)
    worker = RecordingWorker()

    response = submission_routes.requeue_submission(failed.id, current_user=admin, db=db, worker=worker)

    assert response.submission_id != failed.id
    assert response.status == "Pending"
    assert worker.notified == 1


def test_requeue_route_refuses_decided_submission(db, arena):
    admin = arena.user("root", role="admin")
    accepted = arena.submission(arena.user("alice"), arena.problem(), state=SubmissionState.ACCEPTED)

    with pytest.raises(RequeueNotAllowedError):
        submission_routes.requeue_submission(accepted.id, current_user=admin, db=db, worker=None)


def test_current_user_from_bearer_token(db, arena):
    alice = arena.user("alice")
    token = create_access_token({"sub": str(alice.id), "role": alice.role})
    credentials = SimpleNamespace(credentials=token)

    assert deps.get_current_user(credentials=credentials, db=db).id == alice.id


def test_current_user_requires_credentials(db):
    with pytest.raises(AuthenticationError):
        deps.get_current_user(credentials=None, db=db)
    with pytest.raises(AuthenticationError):
        deps.get_current_user(credentials=SimpleNamespace(credentials="garbage"), db=db)


def test_disabled_user_is_rejected(db, arena):
    alice = arena.user("alice")
    alice.is_active = False
    db.commit()
    token = create_access_token({"sub": str(alice.id), "role": alice.role})

    with pytest.raises(AuthenticationError):
        deps.get_current_user(credentials=SimpleNamespace(credentials=token), db=db)


def test_admin_dependency(arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")

    assert deps.get_current_admin_user(current_user=admin) is admin
    with pytest.raises(AuthorizationError):
        deps.get_current_admin_user(current_user=alice)


def test_submitting_to_unstarted_contest_is_not_found_for_participants(db, arena):
    admin = arena.user("root", role="admin")
    alice = arena.user("alice")
    problem = arena.problem(arena.contest(starts_in=timedelta(hours=3)))

    with pytest.raises(ResourceNotFoundError):
        _submit(db, alice, problem)

    assert _submit(db, admin, problem).status == "Pending"
