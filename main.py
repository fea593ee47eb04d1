"""Command-line interface for the Team Pulse service."""

from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import Sequence

from teampulse.config import Settings, load_settings
from teampulse.database import Database

logger = logging.getLogger("teampulse.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Team Pulse utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the Team Pulse database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port for the HTTP API (default: 5000)",
    )

    insights_parser = subparsers.add_parser(
        "insights", help="Print team engagement insights as JSON"
    )
    insights_parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="Indentation for the JSON output (default: 2)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "insights"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from teampulse.application import create_application
    import uvicorn

    logger.info("Starting Team Pulse API on http://%s:%s/api", host, port)
    app = create_application(settings=settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _print_insights(database: Database, *, indent: int) -> None:
    from teampulse.errors import UnexpectedFailure
    from teampulse.insights import collect_insights

    try:
        summary = collect_insights(database)
    except UnexpectedFailure as exc:
        raise SystemExit(f"Error: {exc.message}") from exc

    payload = {
        "totalQuestionsAsked": summary.total_questions_asked,
        "topContributors": [
            {
                "name": contributor.name,
                "email": contributor.email,
                "totalActivity": contributor.total_activity,
                "questionCount": contributor.question_count,
                "answerCount": contributor.answer_count,
            }
            for contributor in summary.top_contributors
        ],
        "averageAnswersPerQuestion": summary.average_answers_per_question,
    }
    print(json.dumps(payload, indent=indent or None))


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "insights":
        _print_insights(database, indent=args.indent)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
