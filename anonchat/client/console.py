"""
MODULE OVERVIEW:
The Rich terminal renderer for a chat.

WHAT IS HAPPENING HERE:
The chat loop calls back into this class for every event and every phase change.
Each event kind gets one styled line; the status snapshot gets a table. Typing
indicators are shown in the status line only, so they don't flood the transcript.
"""
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from anonchat.client.chat_loop import ChatLoop
from anonchat.shared.models import ChatEvent, EventKind, StatusRecord

EVENT_LINES = {
    EventKind.WAITING: ("yellow", "Looking for someone you can chat with..."),
    EventKind.CONNECTED: ("green bold", "You're now chatting with a random stranger. Say hi!"),
    EventKind.PEER_DISCONNECTED: ("red", "Stranger has disconnected."),
    EventKind.CONNECTION_DIED: ("red", "The connection died."),
    EventKind.BANNED: ("red bold", "You have been banned for possible inappropriate behavior."),
    EventKind.ONLINE_COUNT: ("dim", "Online count updated."),
}


def status_table(status: StatusRecord) -> Table:
    table = Table(title="Service Status", expand=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Online", str(status.count))
    table.add_row("Forced unmonitored", "yes" if status.force_unmon else "no")
    table.add_row("Spy queue (s)", f"{status.spy_queue_time:.2f}")
    table.add_row("Spyee queue (s)", f"{status.spyee_queue_time:.2f}")
    table.add_row("Suggested mode", status.suggested_mode)
    table.add_row("Content filter", f"{status.antinude_percent:.2f} on {', '.join(status.antinude_servers)}")
    table.add_row("Servers", ", ".join(status.servers))
    table.add_row("Timestamp", datetime.fromtimestamp(status.timestamp).strftime("%Y-%m-%d %H:%M:%S"))
    return table


class ConsoleRenderer:
    def __init__(self, loop: ChatLoop, console: Console | None = None):
        self.loop = loop
        self.console = console or Console()
        self.status = "INITIALIZING"

    def on_status_change(self, status: str):
        self.status = status
        ts = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[dim][{ts}] State: {status}[/]")

    def render_event(self, event: ChatEvent):
        kind = event.kind
        if kind in EVENT_LINES:
            style, line = EVENT_LINES[kind]
            self.console.print(f"[{style}]{line}[/]")
        elif kind is EventKind.MESSAGE_RECEIVED:
            self.console.print(f"[red bold]Stranger:[/] {escape(event.text)}", highlight=False)
        elif kind is EventKind.COUNTERPART_MESSAGE:
            sender, text = event.payload
            self.console.print(f"[blue bold]{escape(sender)}:[/] {escape(text)}", highlight=False)
        elif kind is EventKind.QUESTION:
            self.console.print(f"[blue]Question to discuss:[/] {escape(event.text)}")
        elif kind is EventKind.SHARED_TOPICS:
            self.console.print(f"[green]You both like {escape(', '.join(event.payload)) or 'nothing in common'}.[/]")
        elif kind is EventKind.STATUS_SNAPSHOT and event.status is not None:
            self.console.print(status_table(event.status))
        elif kind in (EventKind.PEER_TYPING, EventKind.PEER_STOPPED_TYPING):
            self.status = "Stranger is typing..." if kind is EventKind.PEER_TYPING else "CONNECTED"
        elif kind in (EventKind.COUNTERPART_TYPING, EventKind.COUNTERPART_STOPPED_TYPING):
            pass
        elif kind is EventKind.COUNTERPART_DISCONNECTED:
            self.console.print(f"[red]{escape(event.text)} has disconnected.[/]")
        elif kind in (EventKind.CAPTCHA_REQUIRED, EventKind.CAPTCHA_REJECTED):
            self.console.print(f"[yellow]Captcha required (challenge {escape(event.text)}).[/]")
        elif kind is EventKind.PEER_INSTITUTION:
            self.console.print(f"[cyan]Stranger's college: {escape(event.text)}[/]")
        elif kind is EventKind.CONNECTION_ERROR:
            self.console.print(f"[red]Error: {escape(event.text)}[/]")
        elif kind is EventKind.SERVER_MESSAGE:
            self.console.print(f"[magenta]{escape(event.text)}[/]")
        # IDENTITY_DIGEST only matters for log generation

    def attach(self):
        # Bridge the loop hooks
        async def event_hook(e): self.render_event(e)
        async def status_hook(s): self.on_status_change(s)

        self.loop.set_callbacks(event_hook, status_hook)
