"""
CLI entrypoint for anonchat.
"""
import asyncio

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from anonchat.client.chat_loop import ChatLoop, stdin_source
from anonchat.client.console import ConsoleRenderer, status_table
from anonchat.client.session import ChatSession
from anonchat.shared.config import configure_logging
from anonchat.shared.errors import ChatError
from anonchat.shared.models import CollegeMode, PlainMode, QuestionMode, SessionConfig, SpyMode

app = typer.Typer(help="Talk to strangers from the terminal")
console = Console()


def build_config(
    lang: str,
    group: str,
    server: str,
    topics: list[str],
    question: str | None,
    can_save_question: bool,
    spy: bool,
    college: str | None,
    college_auth: str | None,
    any_college: bool,
) -> SessionConfig:
    """Resolve the mode options into one SessionConfig. Only one mode may be requested."""
    requested = [name for name, on in (("spy", spy), ("question", question), ("college", college_auth)) if on]
    if len(requested) > 1:
        raise typer.BadParameter(f"choose one mode, got: {', '.join(requested)}")

    if spy:
        mode = SpyMode()
    elif question:
        mode = QuestionMode(question=question, can_save_question=can_save_question)
    elif college_auth:
        mode = CollegeMode(college=college or "", college_auth=college_auth, any_college=any_college)
    else:
        mode = PlainMode()
    return SessionConfig(lang=lang, group=group, server=server, topics=tuple(topics), mode=mode)


async def _chat(config: SessionConfig, duration: float | None):
    async with ChatSession(config) as session:
        loop = ChatLoop(session, outgoing=stdin_source())
        ConsoleRenderer(loop, console).attach()
        await loop.run(duration)


async def _status(server: str):
    async with ChatSession(SessionConfig(server=server)) as session:
        return await session.fetch_status()


@app.command()
def chat(
    lang: str = typer.Option("en", help="Two-letter language code"),
    group: str = typer.Option("", help='Chat group, e.g. "unmon" for unmonitored chat'),
    server: str = typer.Option("", help="Pin a specific server, e.g. front1"),
    topic: list[str] = typer.Option([], "--topic", help="Interest to match on (repeatable)"),
    question: str | None = typer.Option(None, help="Ask a question and watch two strangers discuss it"),
    can_save_question: bool = typer.Option(False, help="Let the service keep your question"),
    spy: bool = typer.Option(False, "--spy", help="Offer to discuss someone else's question"),
    college: str | None = typer.Option(None, help="College identifier, e.g. ktu.edu"),
    college_auth: str | None = typer.Option(None, help="College auth token"),
    any_college: bool = typer.Option(False, help="Match with students from any college"),
    duration: float | None = typer.Option(None, help="Stop after this many seconds"),
    log_level: str = typer.Option("WARNING", help="Log level for stderr"),
):
    """Chat with a random stranger. Type /next for a new stranger, /quit to leave."""
    configure_logging(log_level)
    try:
        config = build_config(
            lang, group, server, topic, question, can_save_question, spy, college, college_auth, any_college
        )
    except ValidationError as e:
        raise typer.BadParameter(str(e))

    try:
        asyncio.run(_chat(config, duration))
    except KeyboardInterrupt:
        pass
    except ChatError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)


@app.command()
def status(server: str = typer.Option("", help="Query a specific server")):
    """Show the service's live counters."""
    configure_logging()
    try:
        record = asyncio.run(_status(server))
    except ChatError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)
    console.print(status_table(record))


if __name__ == "__main__":
    app()
