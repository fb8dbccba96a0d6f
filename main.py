"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from typing import Sequence

import httpx

from userdir.config import DirectoryConfig, load_runtime_config
from userdir.directory import UserDirectory
from userdir.errors import DirectoryError
from userdir.models import Role
from userdir.store import build_store

logger = logging.getLogger("userdir.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-store", help="Create the user store if it does not exist")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP directory service")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: from configuration, 8000)",
    )

    admin_parser = subparsers.add_parser(
        "admin", help="Launch the interactive administration console"
    )
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running directory service (default: {_DEFAULT_SERVICE_URL})",
    )

    create_parser = subparsers.add_parser("create-user", help="Create a user from the command line")
    create_parser.add_argument("email", help="Unique email address for login")
    create_parser.add_argument("--name", default=None, help="Display name (defaults to the email's local part)")
    create_parser.add_argument(
        "--role",
        default=Role.ADMIN.value,
        choices=[role.value for role in Role],
        help="Role to assign (default: admin)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-store", "create-user"}

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


def _build_directory(config: DirectoryConfig) -> UserDirectory:
    store = build_store(config)
    logger.info("Using %s user store at %s", config.store_backend, config.store_path or "<memory>")
    return UserDirectory(store)


def _initialise_store(directory: UserDirectory) -> None:
    records = directory.list_all()
    if not records:
        directory.store.save(records)
    logger.info("User store ready with %d record(s)", len(records))


def _serve(*, directory: UserDirectory, config: DirectoryConfig, host: str | None, port: int | None) -> None:
    from userdir.service import create_app
    import uvicorn

    bind_host = host or config.host
    bind_port = port or config.port
    logger.info("Starting directory API on http://%s:%s", bind_host, bind_port)

    app = create_app(directory=directory)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=config.log_level)


def _run_admin_cli(directory: UserDirectory, *, default_service_url: str | None = None) -> None:
    """Provide an interactive management console for administrators."""

    service_url = default_service_url or _DEFAULT_SERVICE_URL

    print("User Directory Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Delete a user")
            print("  4) Show a page of users from the running service")
            print("  5) Exit")

            choice = input("Enter choice [1-5]: ").strip()

            if choice == "1":
                _list_users(directory)
            elif choice == "2":
                _add_user(directory)
            elif choice == "3":
                _delete_user(directory)
            elif choice == "4":
                _show_remote_page(service_url)
            elif choice == "5":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(directory: UserDirectory) -> None:
    try:
        users = directory.list_all()
    except DirectoryError as exc:
        print(f"Failed to load users: {exc.message}")
        return

    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<36}  {'Name':<20}  {'Email':<32}  {'Role':<6}  Created")
    print("-" * 120)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:<36}  {user.name:<20}  {user.email:<32}  {user.role:<6}  {created}")


def _add_user(directory: UserDirectory) -> None:
    print("\nCreate a new user (leave the email blank to cancel).")
    email = input("Email address: ").strip()
    if not email:
        print("User creation cancelled.")
        return

    name = input("Name (blank for default): ").strip() or None
    role = input("Role [user/admin] (default: user): ").strip() or Role.USER.value

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = directory.create(email=email, password=password, name=name, role=role)
    except DirectoryError as exc:
        print(f"Failed to create user: {exc.message}")
        return

    print(f"Created user {user.id}: {user.name} <{user.email}> ({user.role})")


def _delete_user(directory: UserDirectory) -> None:
    user_id = input("ID of the user to delete: ").strip()
    if not user_id:
        print("Deletion cancelled.")
        return

    try:
        removed = directory.delete(user_id)
    except DirectoryError as exc:
        print(f"Failed to delete user: {exc.message}")
        return

    print(f"Deleted user {removed.id} <{removed.email}>")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _show_remote_page(base_url: str) -> None:
    email = os.getenv("USERDIR_CLI_EMAIL")
    password = os.getenv("USERDIR_CLI_PASSWORD")
    if not email or not password:
        print(
            "No admin credentials available. Set USERDIR_CLI_EMAIL and USERDIR_CLI_PASSWORD "
            "before running this command."
        )
        return

    page = input("Page (default 1): ").strip() or "1"
    limit = input("Page size (default 10): ").strip() or "10"
    endpoint = base_url.rstrip("/") + "/users"

    try:
        response = httpx.get(
            endpoint,
            params={"page": page, "limit": limit},
            auth=(email, password),
            timeout=10.0,
        )
    except httpx.HTTPError as exc:
        print(f"Failed to contact directory service: {exc}")
        return

    if response.status_code in (401, 403):
        print("The directory service rejected the configured credentials.")
        return
    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return

    items = payload.get("items", [])
    print(
        f"Page {payload.get('page')} of {payload.get('totalPages')} "
        f"({payload.get('totalItems')} user(s) in total):"
    )
    for item in items:
        print(f"- {item.get('id')} {item.get('name')} <{item.get('email')}> ({item.get('role')})")


def _create_user(directory: UserDirectory, args: argparse.Namespace) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1

    try:
        user = directory.create(email=args.email, password=password, name=args.name, role=args.role)
    except DirectoryError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}> ({user.role})")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    config = load_runtime_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    directory = _build_directory(config)

    if args.command == "serve":
        _serve(directory=directory, config=config, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(directory, default_service_url=args.service_url)
    elif args.command == "init-store":
        _initialise_store(directory)
        print("User store initialisation complete.")
    elif args.command == "create-user":
        return _create_user(directory, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
