import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userdir.config import load_runtime_config
from userdir.directory import UserDirectory
from userdir.errors import DirectoryError
from userdir.store import build_store


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap a user directory account")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument("--name", default=None, help="Display name (defaults to the email's local part)")
    parser.add_argument("--role", default="admin", choices=["admin", "user"], help="Role to assign")
    parser.add_argument(
        "--store",
        dest="store_path",
        default=None,
        help="Path to the user store (defaults to USERDIR_STORE_PATH or the configured path)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not password:
            print("Password must not be empty.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    environ = dict(os.environ)
    if args.store_path:
        environ["USERDIR_STORE_PATH"] = args.store_path
    config = load_runtime_config(environ)

    directory = UserDirectory(build_store(config))

    try:
        user = directory.create(email=args.email, password=password, name=args.name, role=args.role)
    except DirectoryError as exc:  # duplicates, etc.
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}> ({user.role})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
