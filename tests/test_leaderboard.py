import random
from datetime import datetime, timedelta

from sqlalchemy import update

from codearena.models.contest import ContestParticipant
from codearena.services.leaderboard import ContestBoard, LeaderboardService, Standing

T0 = datetime(2026, 1, 1, 12, 0, 0)


def _standing(user_id, score, solved=0, joined=T0):
    return Standing(participant_id=user_id, user_id=user_id, score=score, problems_solved=solved, joined_at=joined)


def _ranks(db, contest_id):
    db.expire_all()
    rows = db.query(ContestParticipant).filter_by(contest_id=contest_id).all()
    return {row.user_id: row.rank for row in rows}


def test_ranking_order_breaks_ties_by_solved_then_join_time(database, db, arena):
    contest = arena.contest()
    a, b, c = arena.user("a"), arena.user("b"), arena.user("c")
    arena.join(contest, a, score=100, solved=3, joined_at=T0 + timedelta(minutes=1))
    arena.join(contest, b, score=100, solved=4, joined_at=T0 + timedelta(minutes=2))
    arena.join(contest, c, score=90, solved=5, joined_at=T0)

    service = LeaderboardService(database)
    standings, total = service.get_page(contest.id, 10, 0)

    assert total == 3
    assert [s.user_id for s in standings] == [b.id, a.id, c.id]
    assert [s.rank for s in standings] == [1, 2, 3]
    assert _ranks(db, contest.id) == {b.id: 1, a.id: 2, c.id: 3}


def test_full_tie_falls_back_to_user_id(database, arena):
    contest = arena.contest()
    first, second = arena.user("first"), arena.user("second")
    arena.join(contest, second, score=50, joined_at=T0)
    arena.join(contest, first, score=50, joined_at=T0)

    standings, _ = LeaderboardService(database).get_page(contest.id, 10, 0)

    assert [s.user_id for s in standings] == sorted([first.id, second.id])


def test_incremental_updates_match_a_fresh_rebuild(database, db, arena):
    contest = arena.contest()
    users = [arena.user(f"user{i}") for i in range(12)]
    for i, user in enumerate(users):
        arena.join(contest, user, joined_at=T0 + timedelta(seconds=i))

    service = LeaderboardService(database)
    service.rebuild(contest.id)

    rng = random.Random(7)
    for _ in range(60):
        user = rng.choice(users)
        delta = rng.choice([0, 10, 25, 100])
        solved = rng.choice([0, 1])
        db.execute(
            update(ContestParticipant)
            .where(ContestParticipant.contest_id == contest.id, ContestParticipant.user_id == user.id)
            .values(
                score=ContestParticipant.score + delta,
                problems_solved=ContestParticipant.problems_solved + solved,
            )
        )
        db.commit()
        service.enqueue(contest.id, user.id)
        service.process_pending()

    incremental, _ = service.get_page(contest.id, None)
    incremental_ranks = _ranks(db, contest.id)

    assert service.rebuild(contest.id) == 0
    rebuilt, _ = service.get_page(contest.id, None)

    assert [(s.user_id, s.rank) for s in incremental] == [(s.user_id, s.rank) for s in rebuilt]
    assert incremental_ranks == {s.user_id: s.rank for s in rebuilt}


def test_pages_and_totals(database, arena):
    contest = arena.contest()
    for i in range(7):
        arena.join(contest, arena.user(f"p{i}"), score=i * 10)

    service = LeaderboardService(database)
    page, total = service.get_page(contest.id, 3, 3)

    assert total == 7
    assert [s.rank for s in page] == [4, 5, 6]
    assert [s.score for s in page] == [30, 20, 10]

    tail, _ = service.get_page(contest.id, 3, 6)
    assert [s.rank for s in tail] == [7]

    empty, _ = service.get_page(contest.id, 3, 20)
    assert empty == []


def test_new_participant_is_inserted_by_event(database, db, arena):
    contest = arena.contest()
    leader = arena.user("leader")
    arena.join(contest, leader, score=10)

    service = LeaderboardService(database)
    service.rebuild(contest.id)

    newcomer = arena.user("newcomer")
    arena.join(contest, newcomer, score=0)
    service.enqueue(contest.id, newcomer.id)
    service.process_pending()

    assert service.rank_of(contest.id, newcomer.id) == 2
    assert _ranks(db, contest.id)[newcomer.id] == 2


def test_rebuild_repairs_stale_stored_ranks(database, db, arena):
    contest = arena.contest()
    a, b = arena.user("a"), arena.user("b")
    arena.join(contest, a, score=10)
    arena.join(contest, b, score=20)

    service = LeaderboardService(database)
    assert service.rebuild(contest.id) == 2

    db.execute(update(ContestParticipant).where(ContestParticipant.user_id == a.id).values(rank=9))
    db.commit()

    assert service.rebuild(contest.id) == 1
    assert _ranks(db, contest.id) == {b.id: 1, a.id: 2}


def test_empty_contest_has_empty_board(database, arena):
    contest = arena.contest()

    standings, total = LeaderboardService(database).get_page(contest.id, 10, 0)

    assert (standings, total) == ([], 0)


def test_board_upsert_reports_changed_range():
    board = ContestBoard([_standing(1, 300), _standing(2, 200), _standing(3, 100)])

    # 3 climbs from last to first: everyone in between shifts.
    assert board.upsert(_standing(3, 400)) == (0, 2)
    assert [s.user_id for s in board.ordered()] == [3, 1, 2]

    # Same sort key: nothing moves.
    start, end = board.upsert(_standing(1, 300))
    assert start > end

    # New entry at the bottom only ranks itself.
    assert board.upsert(_standing(4, 50)) == (3, 3)
    assert board.rank_of(4) == 4
    assert len(board) == 4
    assert 4 in board and 99 not in board


def test_board_move_within_range_is_bounded():
    board = ContestBoard([_standing(i, 100 - i * 10) for i in range(1, 6)])

    # user 4 (rank 4) passes user 3 only
    start, end = board.upsert(_standing(4, 75))

    assert (start, end) == (2, 3)
    assert [s.user_id for s in board.slice(start, end + 1)] == [4, 3]


def test_stop_drains_pending_events(database, db, arena):
    contest = arena.contest()
    user = arena.user("solo")
    arena.join(contest, user, score=5)

    service = LeaderboardService(database)
    service.enqueue(contest.id, user.id)
    service.stop()

    assert service.pending_events() == 0
    assert _ranks(db, contest.id) == {user.id: 1}
