"""
chatsync CLI — `chatsync` command.

Commands:
  chatsync auth login        Log in and store the access token
  chatsync auth signup       Create an account
  chatsync auth status       Show (and optionally verify) the saved login
  chatsync users             Roster with presence
  chatsync chat <peer-id>    Interactive conversation
"""

import asyncio
import json
import logging
import os
from pathlib import Path

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install chatsync[cli]")

from chatsync.client import AsyncChatClient
from chatsync.transport.http import DEFAULT_BASE_URL

console = Console()
CONFIG_FILE = Path.home() / ".chatsync" / "config.json"


def config_path() -> Path:
    """Saved credentials live in CHATSYNC_CONFIG when set, else ~/.chatsync/config.json."""
    override = os.environ.get("CHATSYNC_CONFIG")
    return Path(override) if override else CONFIG_FILE


def _load_config() -> dict:
    try:
        cfg = json.loads(config_path().read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}
    return cfg if isinstance(cfg, dict) else {}


def _save_config(cfg: dict) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({k: v for k, v in cfg.items() if v is not None}, indent=2))
    path.chmod(0o600)  # holds a bearer token


def _get_client() -> AsyncChatClient:
    cfg = _load_config()
    if not cfg.get("access_token"):
        console.print("[red]Not logged in. Run `chatsync auth login` first.[/red]")
        raise SystemExit(1)
    return AsyncChatClient(
        access_token=cfg["access_token"],
        base_url=cfg.get("base_url", DEFAULT_BASE_URL),
    )


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log connection and sync activity")
def main(verbose: bool):
    """chatsync — realtime chat from the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands from separate modules
from chatsync.cli.auth import auth
from chatsync.cli.chat import chat_cmd, users_cmd

main.add_command(auth)
main.add_command(chat_cmd)
main.add_command(users_cmd)


if __name__ == "__main__":
    main()
