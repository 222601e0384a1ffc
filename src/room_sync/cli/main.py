"""
Room Sync CLI - Main entry point

This module provides the command-line chat client built on the
synchronization core.
"""

import asyncio
import logging
import sys
from typing import Optional, Set

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..auth import TokenAuth
from ..client.api import ChatApiClient
from ..client.coordinator import ReadModel, RoomSessionCoordinator
from ..config import DEFAULT_SERVER_URL, ClientConfig
from ..core.models import ConnectionStatus, Message, Room

console = Console()

STATUS_STYLES = {
    ConnectionStatus.IDLE: "dim",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.OPEN: "green",
    ConnectionStatus.CLOSING: "dim",
    ConnectionStatus.RECONNECTING: "yellow",
    ConnectionStatus.FAILED: "bold red",
}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    # aiohttp is chatty at debug level
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def format_message(message: Message) -> str:
    timestamp = message.created_at.strftime('%H:%M:%S')
    reply = f" [dim]↪ {message.reply_to_id}[/dim]" if message.reply_to_id else ""
    return f"[dim]{timestamp}[/dim] [bold]{message.username}[/bold]{reply}: {message.content}"


def rooms_table(rooms, title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Members", justify="right")
    table.add_column("Private")
    table.add_column("Last message")
    for room in rooms:
        last = room.last_message
        table.add_row(
            str(room.id),
            room.name,
            f"{room.current_members}/{room.max_members}",
            "yes" if room.is_private else "no",
            f"{last.username}: {last.content}" if last else "",
        )
    return table


class ChatPrinter:
    """Read model subscriber printing new messages and status changes"""

    def __init__(self, out: Console):
        self.out = out
        self._printed: Set[int] = set()
        self._status: Optional[ConnectionStatus] = None
        self._notice = None

    def __call__(self, model: ReadModel) -> None:
        if model.status != self._status:
            self._status = model.status
            style = STATUS_STYLES.get(model.status, "")
            line = f"[{style}]● {model.status.value}[/{style}]"
            if model.status == ConnectionStatus.RECONNECTING:
                line += f" (attempt {model.reconnect_attempt})"
            if model.has_failed:
                line += " - type /retry to try again"
            self.out.print(line)

        if model.last_notice is not None and model.last_notice is not self._notice:
            self._notice = model.last_notice
            self.out.print(f"[red]Server: {model.last_notice.message}[/red]")

        for message in model.messages:
            if message.id not in self._printed:
                self._printed.add(message.id)
                self.out.print(format_message(message))


def run(coro) -> None:
    try:
        asyncio.run(coro)
    except click.ClickException:
        raise
    except Exception as e:
        console.print(f"❌ {e}")
        sys.exit(1)


@click.group()
@click.option('--server-url', '-s', default=DEFAULT_SERVER_URL, envvar='ROOM_SYNC_SERVER_URL',
              show_default=True, help='Chat server base URL')
@click.option('--token', '-t', envvar='ROOM_SYNC_TOKEN', help='Bearer token')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def cli(ctx, server_url: str, token: Optional[str], verbose: bool):
    """Room Sync - realtime multi-room chat client"""
    setup_logging(verbose)
    try:
        config = ClientConfig(server_url=server_url, token=token)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint='--server-url')

    ctx.ensure_object(dict)
    ctx.obj['config'] = config

    if verbose:
        console.print(f"[dim]Using server: {config.server_url}[/dim]")


def require_token(config: ClientConfig) -> None:
    if not config.token:
        raise click.UsageError("A token is required (--token or ROOM_SYNC_TOKEN)")


@cli.command()
@click.pass_context
def rooms(ctx):
    """List the rooms you are a member of"""
    config = ctx.obj['config']
    require_token(config)

    async def show_rooms():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            listed = await api.list_rooms()
        if not listed:
            console.print("You are not a member of any room.")
            return
        console.print(rooms_table(listed, "Your rooms"))

    run(show_rooms())


@cli.command()
@click.argument('term', default='')
@click.option('--limit', '-l', default=20, help='Number of rooms to show')
@click.pass_context
def search(ctx, term: str, limit: int):
    """Search public rooms"""
    config = ctx.obj['config']
    require_token(config)

    async def show_results():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            found = await api.search_rooms(term, limit=limit)
        console.print(rooms_table(found, f"Public rooms matching {term!r}"))

    run(show_results())


@cli.command()
@click.option('--room-id', '-r', type=int, prompt=True, help='Room ID to read from')
@click.option('--limit', '-l', default=20, help='Number of messages to show')
@click.pass_context
def history(ctx, room_id: int, limit: int):
    """Show chat history for a room"""
    config = ctx.obj['config']
    require_token(config)

    console.print(Panel.fit(f"📜 Chat History: room {room_id}", style="bold cyan"))

    async def show_history():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            page = await api.fetch_history(room_id, limit=limit)

        messages = page.chronological()
        if not messages:
            console.print("No messages found in this room.")
            return

        console.print(f"\nShowing {len(messages)} of {page.total} messages:\n")
        for message in messages:
            console.print(format_message(message))

    run(show_history())


@cli.command()
@click.argument('room_id', type=int)
@click.pass_context
def join(ctx, room_id: int):
    """Join a public room"""
    config = ctx.obj['config']
    require_token(config)

    async def do_join():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            await api.join_room(room_id)
        console.print(f"✅ Joined room {room_id}")

    run(do_join())


@cli.command()
@click.argument('room_id', type=int)
@click.pass_context
def leave(ctx, room_id: int):
    """Leave a room"""
    config = ctx.obj['config']
    require_token(config)

    async def do_leave():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            await api.leave_room(room_id)
        console.print(f"👋 Left room {room_id}")

    run(do_leave())


@cli.command()
@click.argument('name')
@click.option('--description', '-d', default=None, help='Room description')
@click.option('--private', 'is_private', is_flag=True, help='Create a private room')
@click.option('--max-members', '-m', type=click.IntRange(2, 1000), default=None,
              help='Member limit')
@click.pass_context
def create(ctx, name: str, description: Optional[str], is_private: bool,
           max_members: Optional[int]):
    """Create a room"""
    config = ctx.obj['config']
    require_token(config)

    async def do_create():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            room = await api.create_room(
                name, description=description, is_private=is_private, max_members=max_members
            )
        console.print(f"✅ Created room {room.id}: {room.name}")

    run(do_create())


@cli.command()
@click.option('--room-id', '-r', type=int, prompt=True, help='Room ID to chat in')
@click.pass_context
def chat(ctx, room_id: int):
    """Start interactive chat session"""
    config = ctx.obj['config']
    require_token(config)

    console.print(Panel.fit(f"💬 Joining room {room_id}", style="bold magenta"))
    console.print(f"Server: {config.server_url}")

    async def run_chat():
        async with ChatApiClient(config.server_url, TokenAuth(config.token)) as api:
            async with RoomSessionCoordinator.from_config(
                config, history_loader=api, room_directory=api
            ) as session:
                await session.refresh_rooms()
                room: Optional[Room] = session.store.get_room(room_id)
                if room is None:
                    console.print(f"[yellow]Room {room_id} is not in your room list[/yellow]")

                session.subscribe(ChatPrinter(console))
                session.select_room(room or room_id)

                console.print("Type messages and press Enter. "
                              "Commands: /retry, /leave, /quit\n")

                while True:
                    text = (await asyncio.to_thread(console.input)).strip()

                    if text == '/quit':
                        break

                    if text == '/leave':
                        if await session.leave_room(room_id):
                            console.print(f"👋 Left room {room_id}")
                        break

                    if text == '/retry':
                        session.select_room(room_id)
                        continue

                    if not text:
                        continue

                    result = session.send_to_active_room(text)
                    if not result:
                        console.print(f"[red]✗ {result.detail}[/red]")

        console.print("\n👋 Goodbye!")

    run(run_chat())


@cli.command()
def version():
    """Show version information"""
    console.print(Panel.fit(f"Room Sync Client v{__version__}", style="bold blue"))
    console.print("Realtime multi-room chat synchronization")
    console.print("Licensed under AGPLv3")


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        sys.exit(0)
    except Exception as e:
        console.print(f"❌ Unexpected error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
