"""Domain models shared by the persistence layer, the API and the aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple


class Role(str, Enum):
    """Roles a team member can hold."""

    MEMBER = "member"
    MANAGER = "manager"


@dataclass(frozen=True)
class User:
    """Represents an account stored in the team database."""

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime

    @property
    def is_manager(self) -> bool:
        return self.role is Role.MANAGER


@dataclass(frozen=True)
class Question:
    id: int
    title: str
    description: str
    tags: Tuple[str, ...]
    created_by: int
    created_at: datetime
    answer_count: int = 0


@dataclass(frozen=True)
class Answer:
    id: int
    text: str
    question_id: int
    created_by: int
    created_at: datetime


@dataclass(frozen=True)
class QuestionPage:
    """A slice of the question listing plus the size of the full result set."""

    questions: Tuple[Question, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


@dataclass
class ActivityRecord:
    """Per-user activity accumulated while computing insights."""

    user_id: int
    question_count: int = 0
    answer_count: int = 0

    @property
    def total_activity(self) -> int:
        return self.question_count + self.answer_count


@dataclass(frozen=True)
class Contributor:
    name: str
    email: str
    total_activity: int
    question_count: int
    answer_count: int


@dataclass(frozen=True)
class InsightsSummary:
    """Engagement summary returned to managers."""

    total_questions_asked: int
    top_contributors: Tuple[Contributor, ...] = field(default_factory=tuple)
    average_answers_per_question: float = 0.0


__all__ = [
    "ActivityRecord",
    "Answer",
    "Contributor",
    "InsightsSummary",
    "Question",
    "QuestionPage",
    "Role",
    "User",
]
