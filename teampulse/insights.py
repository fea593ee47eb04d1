"""Team engagement insights computed from questions, answers and users."""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Sequence

from .errors import UnexpectedFailure
from .models import ActivityRecord, Answer, Contributor, InsightsSummary, Question, User

logger = logging.getLogger("teampulse.insights")

TOP_CONTRIBUTOR_LIMIT = 3


def _average(answers: int, questions: int) -> float:
    if questions == 0:
        return 0.0
    ratio = Decimal(answers) / Decimal(questions)
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _activity_by_user(
    questions: Iterable[Question], answers: Iterable[Answer]
) -> Dict[int, ActivityRecord]:
    question_counts = Counter(question.created_by for question in questions)
    answer_counts = Counter(answer.created_by for answer in answers)

    records: Dict[int, ActivityRecord] = {}
    for user_id in question_counts.keys() | answer_counts.keys():
        records[user_id] = ActivityRecord(
            user_id=user_id,
            question_count=question_counts.get(user_id, 0),
            answer_count=answer_counts.get(user_id, 0),
        )
    return records


def compute_insights(
    questions: Sequence[Question],
    answers: Sequence[Answer],
    users: Sequence[User],
) -> InsightsSummary:
    """Summarise team engagement.

    Contributors are ranked by questions asked plus answers given. Equal
    activity is ordered by account creation (oldest first, then lowest id),
    so the result is stable for a given snapshot. Activity whose author no
    longer resolves to a user is left out of the ranking but still counts
    toward the question total and the average.
    """

    records = _activity_by_user(questions, answers)
    directory = {user.id: user for user in users}

    ranked: List[tuple[User, ActivityRecord]] = [
        (directory[user_id], record)
        for user_id, record in records.items()
        if user_id in directory
    ]
    ranked.sort(key=lambda item: (-item[1].total_activity, item[0].created_at, item[0].id))

    top = tuple(
        Contributor(
            name=user.name,
            email=user.email,
            total_activity=record.total_activity,
            question_count=record.question_count,
            answer_count=record.answer_count,
        )
        for user, record in ranked[:TOP_CONTRIBUTOR_LIMIT]
    )

    return InsightsSummary(
        total_questions_asked=len(questions),
        top_contributors=top,
        average_answers_per_question=_average(len(answers), len(questions)),
    )


def collect_insights(database) -> InsightsSummary:
    """Read a snapshot from ``database`` and compute its insights.

    The three reads are independent; a write landing between them may show
    up in one count and not the other.
    """

    try:
        questions = database.list_all_questions()
        answers = database.list_all_answers()
        authors = {question.created_by for question in questions}
        authors.update(answer.created_by for answer in answers)
        users = list(database.get_users(authors).values())
    except sqlite3.Error as exc:
        logger.exception("Failed to load data for insights")
        raise UnexpectedFailure("Insights are temporarily unavailable") from exc

    summary = compute_insights(questions, answers, users)
    logger.debug(
        "Computed insights over %d questions, %d answers and %d contributors",
        len(questions),
        len(answers),
        len(users),
    )
    return summary


__all__ = ["TOP_CONTRIBUTOR_LIMIT", "collect_insights", "compute_insights"]
