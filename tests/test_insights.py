from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from teampulse.database import Database
from teampulse.errors import UnexpectedFailure
from teampulse.insights import collect_insights, compute_insights
from teampulse.models import Answer, Question, Role, User

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _user(user_id: int, name: str, *, minutes: int | None = None) -> User:
    offset = user_id if minutes is None else minutes
    return User(
        id=user_id,
        name=name,
        email=f"{name.lower()}@example.com",
        role=Role.MEMBER,
        created_at=EPOCH + timedelta(minutes=offset),
    )


def _question(question_id: int, author: int) -> Question:
    return Question(
        id=question_id,
        title=f"Question {question_id}",
        description="How do we deploy?",
        tags=(),
        created_by=author,
        created_at=EPOCH + timedelta(hours=question_id),
    )


def _answer(answer_id: int, question_id: int, author: int) -> Answer:
    return Answer(
        id=answer_id,
        text="Use the pipeline.",
        question_id=question_id,
        created_by=author,
        created_at=EPOCH + timedelta(hours=answer_id, minutes=30),
    )


def test_empty_snapshot_returns_zeroed_summary() -> None:
    summary = compute_insights([], [], [])

    assert summary.total_questions_asked == 0
    assert summary.top_contributors == ()
    assert summary.average_answers_per_question == 0


def test_answers_without_questions_keep_average_at_zero() -> None:
    alice = _user(1, "Alice")
    answers = [_answer(1, 99, alice.id), _answer(2, 99, alice.id)]

    summary = compute_insights([], answers, [alice])

    assert summary.total_questions_asked == 0
    assert summary.average_answers_per_question == 0
    assert [c.name for c in summary.top_contributors] == ["Alice"]


def test_two_questions_three_answers_ranks_authors() -> None:
    alice = _user(1, "Alice")
    bob = _user(2, "Bob")
    questions = [_question(1, alice.id), _question(2, alice.id)]
    answers = [_answer(1, 1, alice.id), _answer(2, 2, alice.id), _answer(3, 1, bob.id)]

    summary = compute_insights(questions, answers, [bob, alice])

    assert summary.total_questions_asked == 2
    assert summary.average_answers_per_question == 1.5
    assert [(c.name, c.total_activity) for c in summary.top_contributors] == [
        ("Alice", 4),
        ("Bob", 1),
    ]
    first = summary.top_contributors[0]
    assert (first.question_count, first.answer_count) == (2, 2)
    assert first.email == "alice@example.com"


def test_equal_activity_keeps_user_creation_order() -> None:
    users = [_user(user_id, f"User{user_id}") for user_id in range(1, 6)]
    questions = [_question(index, user.id) for index, user in enumerate(reversed(users), start=1)]

    first = compute_insights(questions, [], list(reversed(users)))
    second = compute_insights(list(reversed(questions)), [], users)

    assert [c.name for c in first.top_contributors] == ["User1", "User2", "User3"]
    assert first == second


def test_tie_break_prefers_earlier_account_over_lower_id() -> None:
    veteran = _user(7, "Veteran", minutes=0)
    newcomer = _user(2, "Newcomer", minutes=60)
    questions = [_question(1, newcomer.id), _question(2, veteran.id)]

    summary = compute_insights(questions, [], [newcomer, veteran])

    assert [c.name for c in summary.top_contributors] == ["Veteran", "Newcomer"]


def test_orphaned_authors_are_counted_but_not_ranked() -> None:
    alice = _user(1, "Alice")
    questions = [_question(1, alice.id), _question(2, 404), _question(3, 404)]
    answers = [_answer(1, 2, 404)]

    summary = compute_insights(questions, answers, [alice])

    assert summary.total_questions_asked == 3
    assert summary.average_answers_per_question == 0.33
    assert [c.name for c in summary.top_contributors] == ["Alice"]


def test_users_without_activity_never_appear() -> None:
    alice = _user(1, "Alice")
    idle = _user(2, "Idle")

    summary = compute_insights([_question(1, alice.id)], [], [alice, idle])

    assert [c.name for c in summary.top_contributors] == ["Alice"]


def test_ranking_is_bounded_and_non_increasing() -> None:
    users = [_user(user_id, f"User{user_id}") for user_id in range(1, 7)]
    questions: List[Question] = []
    answers: List[Answer] = []
    next_answer = 1
    for index, user in enumerate(users, start=1):
        questions.append(_question(index, user.id))
        for _ in range(index % 4):
            answers.append(_answer(next_answer, 1, user.id))
            next_answer += 1

    summary = compute_insights(questions, answers, users)

    activity = [c.total_activity for c in summary.top_contributors]
    assert len(activity) == 3
    assert activity == sorted(activity, reverse=True)
    assert summary.total_questions_asked == len(questions)


def test_average_rounds_to_two_places() -> None:
    alice = _user(1, "Alice")
    questions = [_question(index, alice.id) for index in range(1, 4)]
    answers = [_answer(index, 1, alice.id) for index in range(1, 3)]

    summary = compute_insights(questions, answers, [alice])

    assert summary.average_answers_per_question == 0.67


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "teampulse.sqlite3")
    db.initialize()
    return db


def test_collect_insights_reads_from_database(database: Database) -> None:
    alice = database.create_user("Alice", "alice@example.com", "correct-horse")
    bob = database.create_user("Bob", "bob@example.com", "battery-staple")
    first = database.create_question(alice.id, title="Release?", description="When is it?")
    database.create_question(alice.id, title="Staging?", description="Is it up?")
    database.create_answer(alice.id, first.id, text="Friday")
    database.create_answer(alice.id, first.id, text="Or Monday")
    database.create_answer(bob.id, first.id, text="Friday for sure")

    summary = collect_insights(database)

    assert summary.total_questions_asked == 2
    assert summary.average_answers_per_question == 1.5
    assert [(c.email, c.total_activity) for c in summary.top_contributors] == [
        ("alice@example.com", 4),
        ("bob@example.com", 1),
    ]


def test_collect_insights_excludes_deleted_users(database: Database) -> None:
    alice = database.create_user("Alice", "alice@example.com", "correct-horse")
    gone = database.create_user("Gone", "gone@example.com", "correct-horse")
    database.create_question(gone.id, title="Old", description="Question")
    database.create_question(gone.id, title="Older", description="Question")
    database.create_question(alice.id, title="New", description="Question")
    assert database.delete_user(gone.id)

    summary = collect_insights(database)

    assert summary.total_questions_asked == 3
    assert [c.name for c in summary.top_contributors] == ["Alice"]


def test_collect_insights_wraps_storage_errors() -> None:
    class BrokenDatabase:
        def list_all_questions(self):
            raise sqlite3.OperationalError("database is locked")

    with pytest.raises(UnexpectedFailure) as excinfo:
        collect_insights(BrokenDatabase())

    assert excinfo.value.status_code == 500
    assert "locked" not in excinfo.value.message
