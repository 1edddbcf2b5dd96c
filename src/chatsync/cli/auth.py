"""CLI: chatsync auth login|signup|status|logout"""

from typing import Optional

import click
from rich.console import Console

from chatsync.client import AsyncChatClient
from chatsync.errors import AuthError, ChatSyncError
from chatsync.models.user import User
from chatsync.transport.http import DEFAULT_BASE_URL

console = Console()


def _load_config() -> dict:
    from chatsync.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from chatsync.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from chatsync.cli.main import _run
    return _run(coro)


def _save_login(cfg: dict, url: str, token: str, user: User) -> None:
    _save_config({**cfg, "access_token": token, "user_id": user.id, "email": user.email, "base_url": url})
    console.print(f"[green]Logged in as {user.display_name} (ID: {user.id})[/green]")


@click.group()
def auth():
    """Authentication commands."""


@auth.command("login")
@click.option("--base-url", default=None, help="Chat backend base URL")
@click.option("--email", prompt=True)
@click.password_option("--password", confirmation_prompt=False)
def auth_login(base_url: Optional[str], email: str, password: str):
    """Log in with email and password."""
    cfg = _load_config()
    url = base_url or cfg.get("base_url", DEFAULT_BASE_URL)

    async def _login():
        client = AsyncChatClient(base_url=url)
        try:
            token = await client.auth.login(email, password)
            return token, await client.auth.me()
        finally:
            await client.http.close()

    try:
        with console.status("Logging in..."):
            token, user = _run(_login())
    except ChatSyncError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    _save_login(cfg, url, token, user)


@auth.command("signup")
@click.option("--base-url", default=None, help="Chat backend base URL")
@click.option("--username", prompt=True)
@click.option("--email", prompt=True)
@click.password_option("--password")
def auth_signup(base_url: Optional[str], username: str, email: str, password: str):
    """Create an account. Logs in directly when the server returns a token."""
    cfg = _load_config()
    url = base_url or cfg.get("base_url", DEFAULT_BASE_URL)

    async def _signup():
        client = AsyncChatClient(base_url=url)
        try:
            token = await client.auth.signup(username, email, password)
            return token, (await client.auth.me() if token else None)
        finally:
            await client.http.close()

    try:
        token, user = _run(_signup())
    except ChatSyncError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    if token and user:
        _save_login(cfg, url, token, user)
    else:
        console.print("[green]Account created.[/green] Run `chatsync auth login` to sign in.")


@auth.command("status")
@click.option("--check", is_flag=True, help="Verify the saved token against the server")
def auth_status(check: bool):
    """Show which account and server the saved token belongs to."""
    cfg = _load_config()
    url = cfg.get("base_url", DEFAULT_BASE_URL)
    if not cfg.get("access_token"):
        console.print(f"[yellow]Not logged in to {url}. Run `chatsync auth login`.[/yellow]")
        return
    console.print(f"Account: {cfg.get('email') or cfg.get('user_id') or 'unknown'}\nServer:  {url}")
    if not check:
        return

    async def _check():
        client = AsyncChatClient(access_token=cfg["access_token"], base_url=url)
        try:
            return await client.auth.me()
        finally:
            await client.http.close()

    try:
        user = _run(_check())
    except AuthError:
        console.print("[red]Token rejected by the server. Run `chatsync auth login` again.[/red]")
        raise SystemExit(1)
    except ChatSyncError as e:
        console.print(f"[yellow]Could not verify token: {e}[/yellow]")
        raise SystemExit(2)
    console.print(f"[green]Token valid[/green] for {user.display_name}")


@auth.command("logout")
def auth_logout():
    """Forget the saved token. The server URL is kept for the next login."""
    cfg = _load_config()
    _save_config({"base_url": cfg.get("base_url")})
    console.print("[green]Logged out.[/green]")
