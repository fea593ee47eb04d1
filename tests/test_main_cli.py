import json

import pytest

from main import _parse_args, main


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_insights_subcommand_available() -> None:
    args = _parse_args(["insights", "--indent", "0"])
    assert args.command == "insights"
    assert args.indent == 0


def test_insights_command_prints_summary(tmp_path, monkeypatch, capsys) -> None:
    from teampulse.database import Database

    db_path = tmp_path / "cli.sqlite3"
    database = Database(db_path)
    database.initialize()
    author = database.create_user("Alice", "alice@example.com", "correct-horse")
    question = database.create_question(author.id, title="Q", description="D")
    database.create_answer(author.id, question.id, text="A")

    monkeypatch.setenv("TEAMPULSE_DB_PATH", str(db_path))
    monkeypatch.setenv("TEAMPULSE_TOKEN_SECRET", "cli-secret")
    monkeypatch.setenv("TEAMPULSE_CONFIG", str(tmp_path / "absent.yaml"))

    main(["insights"])

    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "totalQuestionsAsked": 1,
        "topContributors": [
            {
                "name": "Alice",
                "email": "alice@example.com",
                "totalActivity": 2,
                "questionCount": 1,
                "answerCount": 1,
            }
        ],
        "averageAnswersPerQuestion": 1.0,
    }


def test_insights_command_reports_storage_failure(tmp_path, monkeypatch) -> None:
    from teampulse import insights
    from teampulse.errors import UnexpectedFailure

    def failing_collect(database):
        raise UnexpectedFailure("Insights are temporarily unavailable")

    monkeypatch.setattr(insights, "collect_insights", failing_collect)
    monkeypatch.setenv("TEAMPULSE_DB_PATH", str(tmp_path / "cli.sqlite3"))
    monkeypatch.setenv("TEAMPULSE_TOKEN_SECRET", "cli-secret")
    monkeypatch.setenv("TEAMPULSE_CONFIG", str(tmp_path / "absent.yaml"))

    with pytest.raises(SystemExit) as excinfo:
        main(["insights"])

    assert excinfo.value.code == "Error: Insights are temporarily unavailable"
