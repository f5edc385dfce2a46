"""
Profile Management CLI - log in, inspect and manage the local user profile.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import argparse
import asyncio
import logging
import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from core.config import Config
from core.environments import UnknownEnvironmentError
from core.token_store import TokenNotFoundError, TokenValue
from core.user_profile import ProfileError, ProfileStore, ServerUser
from utils.audit_logger import AuditLogger

console = Console()


def show_profile(store: ProfileStore, args) -> int:
    """Show the current user."""
    profile = store.get_user()
    if not profile:
        console.print("[yellow]Not logged in.[/yellow]")
        return 0

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("User ID", profile.user_id)
    table.add_row("User name", profile.user_name)
    table.add_row("Display name", profile.display_name or "Not set")
    table.add_row("Email", profile.email or "Not set")
    table.add_row("Environment", profile.environment or "Not set")
    table.add_row("Endpoint", store.endpoint(profile))
    table.add_row(
        "Default app",
        profile.default_app.identifier if profile.default_app else "Not set",
    )

    console.print(Panel.fit(table, title="Current profile", border_style="cyan"))
    return 0


def login(store: ProfileStore, args) -> int:
    """Save a user and access token obtained from the identity provider."""
    token = args.token or os.getenv("APPCLI_TOKEN")
    if not token:
        console.print("[red]✗[/red] No token given (use --token or APPCLI_TOKEN)")
        return 1

    environment = store.resolver.environments(args.env)
    user = ServerUser(
        id=args.user_id,
        name=args.user_name,
        display_name=args.display_name,
        email=args.email,
    )

    profile = asyncio.run(
        store.save_user(user, TokenValue(id=args.token_id, token=token), environment.name)
    )
    console.print(
        f"[green]✓[/green] Logged in as [bold]{profile.user_name}[/bold] "
        f"on {environment.name} ({environment.endpoint})"
    )
    return 0


def logout(store: ProfileStore, args) -> int:
    """Log out the current user."""
    profile = store.get_user()
    if not profile:
        console.print("[yellow]Not logged in.[/yellow]")
        return 0

    asyncio.run(store.delete_user())
    console.print(f"[green]✓[/green] Logged out {profile.user_name}")
    return 0


def set_app(store: ProfileStore, args) -> int:
    """Set the default app."""
    profile = store.set_default_app(args.app)
    console.print(f"[green]✓[/green] Default app set to {profile.default_app.identifier}")
    return 0


def clear_app(store: ProfileStore, args) -> int:
    """Clear the default app."""
    store.clear_default_app()
    console.print("[green]✓[/green] Default app cleared")
    return 0


def show_token(store: ProfileStore, args) -> int:
    """Show the id of the stored access token."""
    profile = store.get_user()
    if not profile:
        console.print("[yellow]Not logged in.[/yellow]")
        return 1

    token_id = asyncio.run(store.access_token_id(profile))
    console.print(f"Access token id: [bold]{token_id}[/bold]")
    return 0


def list_environments(store: ProfileStore, args) -> int:
    """List known environments."""
    table = Table(title="Environments", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Endpoint")
    table.add_column("Description", style="dim")

    for name in store.resolver.names():
        environment = store.resolver.environments(name)
        marker = " (default)" if name == store.resolver.default else ""
        table.add_row(f"{name}{marker}", environment.endpoint, environment.description)

    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manage_profile", description="Manage the local user profile"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("show", help="Show the current user").set_defaults(func=show_profile)

    login_parser = subparsers.add_parser("login", help="Save a logged-in user")
    login_parser.add_argument("--user-id", required=True)
    login_parser.add_argument("--user-name", required=True)
    login_parser.add_argument("--display-name")
    login_parser.add_argument("--email")
    login_parser.add_argument("--env", help="Environment name")
    login_parser.add_argument("--token-id", required=True)
    login_parser.add_argument("--token", help="Access token (or APPCLI_TOKEN)")
    login_parser.set_defaults(func=login)

    subparsers.add_parser("logout", help="Log out").set_defaults(func=logout)

    app_parser = subparsers.add_parser("set-app", help="Set the default app")
    app_parser.add_argument("app", help="owner/app")
    app_parser.set_defaults(func=set_app)

    subparsers.add_parser("clear-app", help="Clear the default app").set_defaults(
        func=clear_app
    )
    subparsers.add_parser("token", help="Show the access token id").set_defaults(
        func=show_token
    )
    subparsers.add_parser("environments", help="List environments").set_defaults(
        func=list_environments
    )

    return parser


def main(argv=None) -> int:
    """Run a profile command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = Config(args.config)
    audit = AuditLogger.from_config(config)
    store = ProfileStore.from_config(config, audit=audit)

    try:
        return args.func(store, args)
    except UnknownEnvironmentError as e:
        console.print(f"[red]✗[/red] Unknown environment '{e.args[0]}'")
        return 1
    except TokenNotFoundError as e:
        console.print(f"[red]✗[/red] No access token stored for {e.args[0]}")
        return 1
    except ProfileError as e:
        console.print(f"[red]✗[/red] {e}")
        return 1
    finally:
        audit.close()


if __name__ == "__main__":
    sys.exit(main())
