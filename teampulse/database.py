"""SQLite-backed persistence for users, questions and answers."""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from passlib.context import CryptContext

from .config import resolve_database_path
from .errors import Conflict, NotFound, ValidationFailure
from .models import Answer, Question, QuestionPage, Role, User

logger = logging.getLogger("teampulse.database")

MIN_PASSWORD_LENGTH = 8

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _casefold(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.casefold()


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def _require_text(value: str, field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValidationFailure(f"{field} must not be empty")
    return stripped


def _normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if "@" not in normalized:
        raise ValidationFailure("A valid email address is required")
    return normalized


class Database:
    """Simple wrapper around SQLite for persisting the team knowledge base."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        # Author and parent references are checked when rows are written, not
        # enforced afterwards: deleting a user leaves its content orphaned.
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('member', 'manager')),
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_by INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS answers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    question_id INTEGER NOT NULL,
                    created_by INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_questions_created_by ON questions(created_by);
                CREATE INDEX IF NOT EXISTS idx_questions_created_at ON questions(created_at);
                CREATE INDEX IF NOT EXISTS idx_answers_question_id ON answers(question_id);
                CREATE INDEX IF NOT EXISTS idx_answers_created_by ON answers(created_by);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Role | str = Role.MEMBER,
    ) -> User:
        """Create a new account and return it."""

        normalized_name = _require_text(name, "Name")
        normalized_email = _normalize_email(email)
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailure(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        try:
            resolved_role = Role(role)
        except ValueError as exc:
            raise ValidationFailure(f"Unknown role '{role}'") from exc

        created_at = _current_timestamp()
        password_hash = _hash_password(password)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, role, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        normalized_name,
                        normalized_email,
                        resolved_role.value,
                        password_hash,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise Conflict("A user with that email already exists") from exc
            user_id = int(cursor.lastrowid)

        logger.info("Created %s account #%s for %s", resolved_role.value, user_id, normalized_email)
        return User(
            id=user_id,
            name=normalized_name,
            email=normalized_email,
            role=resolved_role,
            created_at=created_at,
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_users(self, user_ids: Iterable[int]) -> Dict[int, User]:
        """Return the users that still exist among ``user_ids``, keyed by id."""

        ids = sorted({int(user_id) for user_id in user_ids})
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
        return {int(row["id"]): self._row_to_user(row) for row in rows}

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                ((email or "").strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def delete_user(self, user_id: int) -> bool:
        """Remove an account. Questions and answers it authored are kept."""

        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------
    def create_question(
        self,
        author_id: int,
        *,
        title: str,
        description: str,
        tags: Sequence[str] = (),
    ) -> Question:
        normalized_title = _require_text(title, "Title")
        normalized_description = _require_text(description, "Description")
        normalized_tags = [tag.strip() for tag in tags if tag and tag.strip()]
        created_at = _current_timestamp()

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO questions (title, description, tags, created_by, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    normalized_title,
                    normalized_description,
                    json.dumps(normalized_tags),
                    author_id,
                    _serialize_datetime(created_at),
                ),
            )
            question_id = int(cursor.lastrowid)

        return Question(
            id=question_id,
            title=normalized_title,
            description=normalized_description,
            tags=tuple(normalized_tags),
            created_by=author_id,
            created_at=created_at,
        )

    def get_question(self, question_id: int) -> Optional[Question]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT q.*,
                       (SELECT COUNT(*) FROM answers a WHERE a.question_id = q.id) AS answer_count
                  FROM questions q
                 WHERE q.id = ?
                """,
                (question_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_question(row)

    def list_questions(
        self,
        *,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        page: int = 1,
        limit: int = 100,
    ) -> QuestionPage:
        """Return one page of questions, newest first, matching the filters."""

        if page < 1:
            raise ValidationFailure("page must be at least 1")
        if limit < 1:
            raise ValidationFailure("limit must be at least 1")

        clauses: List[str] = []
        params: List[object] = []

        needle = (search or "").strip()
        if needle:
            folded = needle.casefold()
            clauses.append(
                """
                (instr(casefold(q.title), ?) > 0
                 OR instr(casefold(q.description), ?) > 0
                 OR EXISTS (
                     SELECT 1 FROM json_each(q.tags) AS t WHERE instr(casefold(t.value), ?) > 0
                 ))
                """
            )
            params.extend([folded, folded, folded])

        wanted_tag = (tag or "").strip()
        if wanted_tag:
            clauses.append("EXISTS (SELECT 1 FROM json_each(q.tags) AS t WHERE t.value = ?)")
            params.append(wanted_tag)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        offset = (page - 1) * limit

        with self._connect() as conn:
            total = int(
                conn.execute(f"SELECT COUNT(*) FROM questions q {where}", params).fetchone()[0]
            )
            rows = conn.execute(
                f"""
                SELECT q.*,
                       (SELECT COUNT(*) FROM answers a WHERE a.question_id = q.id) AS answer_count
                  FROM questions q
                  {where}
                 ORDER BY q.created_at DESC, q.id DESC
                 LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()

        return QuestionPage(
            questions=tuple(self._row_to_question(row) for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def list_all_questions(self) -> List[Question]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM questions ORDER BY id").fetchall()
        return [self._row_to_question(row) for row in rows]

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def create_answer(self, author_id: int, question_id: int, *, text: str) -> Answer:
        """Attach an answer to an existing question.

        Raises :class:`NotFound` without writing anything when the question
        does not exist.
        """

        normalized_text = _require_text(text, "Answer text")
        created_at = _current_timestamp()

        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO answers (text, question_id, created_by, created_at)
                SELECT ?, q.id, ?, ? FROM questions q WHERE q.id = ?
                """,
                (normalized_text, author_id, _serialize_datetime(created_at), question_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Question not found")
            answer_id = int(cursor.lastrowid)

        return Answer(
            id=answer_id,
            text=normalized_text,
            question_id=question_id,
            created_by=author_id,
            created_at=created_at,
        )

    def list_answers(self, question_id: int) -> List[Answer]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM answers
                 WHERE question_id = ?
                 ORDER BY created_at DESC, id DESC
                """,
                (question_id,),
            ).fetchall()
        return [self._row_to_answer(row) for row in rows]

    def list_all_answers(self) -> List[Answer]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM answers ORDER BY id").fetchall()
        return [self._row_to_answer(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            role=Role(str(row["role"])),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_question(self, row: sqlite3.Row) -> Question:
        keys = row.keys()
        return Question(
            id=int(row["id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            tags=tuple(json.loads(row["tags"] or "[]")),
            created_by=int(row["created_by"]),
            created_at=_parse_datetime(str(row["created_at"])),
            answer_count=int(row["answer_count"]) if "answer_count" in keys else 0,
        )

    def _row_to_answer(self, row: sqlite3.Row) -> Answer:
        return Answer(
            id=int(row["id"]),
            text=str(row["text"]),
            question_id=int(row["question_id"]),
            created_by=int(row["created_by"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
