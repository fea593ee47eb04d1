"""FastAPI application exposing the Team Pulse question and insights endpoints."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional, Set

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import Settings, load_settings
from .database import Database
from .errors import (
    AuthenticationFailure,
    NotFound,
    error_body,
    register_exception_handlers,
)
from .insights import collect_insights
from .models import Answer, InsightsSummary, Question, Role, User
from .security import BearerAuth, TokenIssuer, require_manager

logger = logging.getLogger("teampulse.api")

MAX_PAGE_LIMIT = 100
MAX_TAGS = 10
SQLITE_MAX_INTEGER = 2**63 - 1


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip_required(value: object, field: str) -> object:
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field} must not be empty")
    return stripped


class RegisterRequest(APIModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    role: Role = Role.MEMBER

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: object) -> object:
        return _strip_required(value, "name")

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        stripped = value.strip().lower()
        if "@" not in stripped:
            raise ValueError("email must be a valid email address")
        return stripped


class LoginRequest(APIModel):
    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class QuestionCreateRequest(APIModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: object) -> object:
        return _strip_required(value, "title")

    @field_validator("description", mode="before")
    @classmethod
    def _normalize_description(cls, value: object) -> object:
        return _strip_required(value, "description")

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tags(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise ValueError("tags must be provided as a list of strings")
        normalised: List[str] = []
        seen: Set[str] = set()
        for item in value:
            if not isinstance(item, str):
                raise ValueError("tags must contain only strings")
            stripped = item.strip()
            if not stripped or stripped in seen:
                continue
            normalised.append(stripped)
            seen.add(stripped)
        if len(normalised) > MAX_TAGS:
            raise ValueError(f"at most {MAX_TAGS} tags are allowed")
        return normalised


class AnswerCreateRequest(APIModel):
    text: str = Field(..., min_length=1, max_length=5000)

    @field_validator("text", mode="before")
    @classmethod
    def _normalize_text(cls, value: object) -> object:
        return _strip_required(value, "text")


class UserView(APIModel):
    id: str
    name: str
    email: str
    role: Role
    created_at: datetime


class AuthorView(APIModel):
    id: str
    name: str
    email: str


class QuestionView(APIModel):
    id: str
    title: str
    description: str
    tags: List[str]
    created_by: Optional[AuthorView]
    created_at: datetime
    answer_count: int = 0


class AnswerView(APIModel):
    id: str
    text: str
    question_id: str
    created_by: Optional[AuthorView]
    created_at: datetime


class AuthResponse(APIModel):
    message: str
    token: str
    user: UserView


class ProfileResponse(APIModel):
    user: UserView


class QuestionResponse(APIModel):
    question: QuestionView


class QuestionCreatedResponse(QuestionResponse):
    message: str


class QuestionListResponse(APIModel):
    questions: List[QuestionView]
    total_pages: int
    current_page: int
    total: int


class AnswerCreatedResponse(APIModel):
    message: str
    answer: AnswerView


class AnswerListResponse(APIModel):
    answers: List[AnswerView]


class ContributorView(APIModel):
    name: str
    email: str
    total_activity: int
    question_count: int
    answer_count: int


class InsightsResponse(APIModel):
    total_questions_asked: int
    top_contributors: List[ContributorView]
    average_answers_per_question: float


def user_to_view(user: User) -> UserView:
    return UserView(
        id=str(user.id),
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
    )


def author_to_view(user: Optional[User]) -> Optional[AuthorView]:
    if user is None:
        return None
    return AuthorView(id=str(user.id), name=user.name, email=user.email)


def question_to_view(question: Question, authors: Dict[int, User]) -> QuestionView:
    return QuestionView(
        id=str(question.id),
        title=question.title,
        description=question.description,
        tags=list(question.tags),
        created_by=author_to_view(authors.get(question.created_by)),
        created_at=question.created_at,
        answer_count=question.answer_count,
    )


def answer_to_view(answer: Answer, authors: Dict[int, User]) -> AnswerView:
    return AnswerView(
        id=str(answer.id),
        text=answer.text,
        question_id=str(answer.question_id),
        created_by=author_to_view(authors.get(answer.created_by)),
        created_at=answer.created_at,
    )


def insights_to_response(summary: InsightsSummary) -> InsightsResponse:
    return InsightsResponse(
        total_questions_asked=summary.total_questions_asked,
        top_contributors=[
            ContributorView(
                name=contributor.name,
                email=contributor.email,
                total_activity=contributor.total_activity,
                question_count=contributor.question_count,
                answer_count=contributor.answer_count,
            )
            for contributor in summary.top_contributors
        ],
        average_answers_per_question=summary.average_answers_per_question,
    )


def _parse_id(raw: str, not_found_message: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise NotFound(not_found_message) from None
    if value < 1 or value > SQLITE_MAX_INTEGER:
        raise NotFound(not_found_message)
    return value


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    issuer: TokenIssuer | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Instantiate the JSON API."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    if issuer is None:
        issuer = TokenIssuer(settings.token_secret, ttl=settings.token_ttl)

    default_limit = min(settings.page_limit, MAX_PAGE_LIMIT)

    app = FastAPI(
        title="Team Pulse API",
        description="Team questions, answers and engagement insights",
        version="1.0.0",
    )
    app.state.database = database
    app.state.issuer = issuer
    app.state.settings = settings

    current_user = BearerAuth(database, issuer)
    current_manager = require_manager(current_user)

    def get_db() -> Database:
        return database

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok", "message": "Team Pulse API is running!"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.post(
        "/auth/register",
        response_model=AuthResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def register(payload: RegisterRequest, db: Database = Depends(get_db)) -> AuthResponse:
        user = db.create_user(payload.name, payload.email, payload.password, payload.role)
        return AuthResponse(
            message="User registered successfully",
            token=issuer.issue(user),
            user=user_to_view(user),
        )

    @app.post("/auth/login", response_model=AuthResponse)
    async def login(payload: LoginRequest, db: Database = Depends(get_db)) -> AuthResponse:
        user = db.authenticate_user(payload.email, payload.password)
        if user is None:
            logger.warning("Failed login attempt for %s", payload.email.strip().lower())
            raise AuthenticationFailure("Invalid email or password")
        return AuthResponse(
            message="Login successful",
            token=issuer.issue(user),
            user=user_to_view(user),
        )

    @app.get("/auth/profile", response_model=ProfileResponse)
    async def read_profile(user: User = Depends(current_user)) -> ProfileResponse:
        return ProfileResponse(user=user_to_view(user))

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------
    @app.post(
        "/questions",
        response_model=QuestionCreatedResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_question(
        payload: QuestionCreateRequest,
        user: User = Depends(current_user),
        db: Database = Depends(get_db),
    ) -> QuestionCreatedResponse:
        question = db.create_question(
            user.id,
            title=payload.title,
            description=payload.description,
            tags=payload.tags,
        )
        logger.info("User %s asked question %s", user.id, question.id)
        return QuestionCreatedResponse(
            message="Question created successfully",
            question=question_to_view(question, {user.id: user}),
        )

    @app.get("/questions", response_model=QuestionListResponse)
    async def list_questions(
        search: Optional[str] = Query(default=None, max_length=200),
        tag: Optional[str] = Query(default=None, max_length=100),
        page: int = Query(default=1, ge=1),
        limit: Optional[int] = Query(default=None, ge=1, le=MAX_PAGE_LIMIT),
        db: Database = Depends(get_db),
    ) -> QuestionListResponse:
        result = db.list_questions(
            search=search,
            tag=tag,
            page=page,
            limit=limit or default_limit,
        )
        authors = db.get_users(question.created_by for question in result.questions)
        return QuestionListResponse(
            questions=[question_to_view(question, authors) for question in result.questions],
            total_pages=result.total_pages,
            current_page=result.page,
            total=result.total,
        )

    @app.get("/questions/{question_id}", response_model=QuestionResponse)
    async def read_question(question_id: str, db: Database = Depends(get_db)) -> QuestionResponse:
        question = db.get_question(_parse_id(question_id, "Question not found"))
        if question is None:
            raise NotFound("Question not found")
        authors = db.get_users([question.created_by])
        return QuestionResponse(question=question_to_view(question, authors))

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    @app.post(
        "/answers/{question_id}",
        response_model=AnswerCreatedResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_answer(
        question_id: str,
        payload: AnswerCreateRequest,
        user: User = Depends(current_user),
        db: Database = Depends(get_db),
    ) -> AnswerCreatedResponse:
        answer = db.create_answer(
            user.id,
            _parse_id(question_id, "Question not found"),
            text=payload.text,
        )
        logger.info("User %s answered question %s", user.id, answer.question_id)
        return AnswerCreatedResponse(
            message="Answer created successfully",
            answer=answer_to_view(answer, {user.id: user}),
        )

    @app.get("/answers/{question_id}", response_model=AnswerListResponse)
    async def list_answers(question_id: str, db: Database = Depends(get_db)) -> AnswerListResponse:
        try:
            parsed = _parse_id(question_id, "Question not found")
        except NotFound:
            return AnswerListResponse(answers=[])
        answers = db.list_answers(parsed)
        authors = db.get_users(answer.created_by for answer in answers)
        return AnswerListResponse(answers=[answer_to_view(answer, authors) for answer in answers])

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------
    @app.get("/insights", response_model=InsightsResponse)
    async def read_insights(
        manager: User = Depends(current_manager),
        db: Database = Depends(get_db),
    ) -> InsightsResponse:
        summary = collect_insights(db)
        logger.info("Manager %s viewed team insights", manager.id)
        return insights_to_response(summary)

    register_exception_handlers(app)

    @app.exception_handler(sqlite3.Error)
    async def handle_database_error(_: Request, exc: sqlite3.Error) -> JSONResponse:
        logger.error("Database failure while handling request", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("Server error"),
        )

    return app


__all__ = ["create_app"]
