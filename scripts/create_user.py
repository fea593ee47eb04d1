import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from teampulse.config import load_settings, resolve_database_path
from teampulse.database import MIN_PASSWORD_LENGTH, Database
from teampulse.models import Role


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Team Pulse account")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.MEMBER.value,
        help="Account role (default: member)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to the configured database_path)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
                file=sys.stderr,
            )
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv=None) -> int:
    args = parse_args(argv)
    password = prompt_for_password()

    if args.db_path:
        db_path = resolve_database_path(args.db_path)
    else:
        try:
            db_path = load_settings().database_path
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    database = Database(db_path)
    database.initialize()

    try:
        user = database.create_user(args.name, args.email, password, args.role)
    except ValueError as exc:  # duplicates, weak passwords, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
