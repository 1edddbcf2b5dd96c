"""CLI: chatsync chat, chatsync users"""

import asyncio
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from chatsync.client import AsyncChatClient
from chatsync.errors import ChatSyncError
from chatsync.models.message import DeliveryStatus, Message
from chatsync.notices import Notice, NoticeLevel

console = Console()

HELP = (
    "/edit <id> <text>  /delete <id>  /file <path> [caption]  /resend <temp-id>\n"
    "/show  /sync  /reconnect  /quit"
)

_STATUS_STYLE = {
    DeliveryStatus.PENDING: "[yellow]…[/yellow]",
    DeliveryStatus.CONFIRMED: "[green]✓[/green]",
    DeliveryStatus.FAILED: "[red]✗[/red]",
}


def _get_client() -> AsyncChatClient:
    from chatsync.cli.main import _get_client
    return _get_client()


def _run(coro):
    from chatsync.cli.main import _run
    return _run(coro)


def _render(client: AsyncChatClient, messages: tuple[Message, ...]) -> Table:
    me = client.current_user.id if client.current_user else None
    peer = client.presence.get(client.engine.peer_id or "")
    table = Table(title=f"{peer.display_name if peer else client.engine.peer_id} [{client.state.value}]")
    table.add_column("id", style="dim", no_wrap=True)
    table.add_column("from")
    table.add_column("message")
    table.add_column("", justify="center")
    for m in messages:
        body = m.text or ""
        if m.media:
            body = f"{body} [cyan]<{m.media.kind}: {m.media.filename or m.media.url}>[/cyan]".strip()
        if m.edited:
            body += " [dim](edited)[/dim]"
        ident = m.id.value if not m.is_provisional else f"~{m.id.value}"
        table.add_row(ident, "you" if m.sender_id == me else (m.sender_name or "them"), body, _STATUS_STYLE[m.status])
    return table


def _print_notice(notice: Optional[Notice]) -> None:
    if notice is None:
        return
    color = {NoticeLevel.INFO: "cyan", NoticeLevel.WARNING: "yellow"}.get(notice.level, "red")
    console.print(f"[{color}]{notice.message}[/{color}]")


async def _dispatch(client: AsyncChatClient, line: str) -> bool:
    """Run one REPL line. Returns False to leave the loop."""
    cmd, _, rest = line.partition(" ")
    if cmd in ("/quit", "/exit"):
        return False
    if cmd == "/show":
        console.print(_render(client, client.messages()))
    elif cmd == "/sync":
        await client.resync()
        console.print(_render(client, client.messages()))
    elif cmd == "/reconnect":
        client.reconnect()
    elif cmd == "/edit":
        message_id, _, text = rest.partition(" ")
        if not await client.edit(message_id, text):
            console.print("[yellow]Edit not applied[/yellow]")
    elif cmd == "/delete":
        if not await client.delete(rest.strip()):
            console.print("[yellow]Delete not applied[/yellow]")
    elif cmd == "/resend":
        await client.resend(rest.strip().lstrip("~"))
    elif cmd == "/file":
        path, _, caption = rest.partition(" ")
        await client.send_file(path, caption)
    elif cmd.startswith("/"):
        console.print(f"[dim]{HELP}[/dim]")
    else:
        await client.send(line)
    return True


@click.command("chat")
@click.argument("peer_id")
def chat_cmd(peer_id: str):
    """Interactive chat with another user."""
    client = _get_client()

    async def _chat():
        client.notices.add_listener(_print_notice)
        try:
            with console.status("Connecting..."):
                me = await client.start()
            client.select_conversation(peer_id)
            await client.resync()
            console.print(f"[dim]Signed in as {me.display_name}[/dim]")
            console.print(_render(client, client.messages()))
            console.print(f"[cyan]Type a message (Ctrl+C to exit)[/cyan]\n[dim]{HELP}[/dim]")
            while True:
                line = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ")
                try:
                    if not await _dispatch(client, line.strip()):
                        break
                except ChatSyncError as e:
                    console.print(f"[red]{e}[/red]")
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        except ChatSyncError as e:
            console.print(f"[red]{e}[/red]")
        finally:
            await client.close()

    _run(_chat())


@click.command("users")
@click.option("--online", is_flag=True, help="Only users currently online")
def users_cmd(online: bool):
    """List the roster with presence."""
    client = _get_client()

    async def _users():
        try:
            await client.auth.me()
            await client.refresh_roster()
        except ChatSyncError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.http.close()
        users = client.presence.online() if online else client.presence.users()
        table = Table()
        table.add_column("id", style="dim")
        table.add_column("name")
        table.add_column("status")
        for u in users:
            table.add_row(u.id, u.display_name, "[green]Online[/green]" if u.is_online else "[dim]Offline[/dim]")
        console.print(table)

    _run(_users())
