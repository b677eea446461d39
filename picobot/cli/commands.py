"""CLI commands for picobot."""

import asyncio
import secrets
from datetime import datetime
from pathlib import Path

import typer
from loguru import logger

from picobot import __logo__, __version__
from picobot.agent.messages import TextBlock, Thread, ToolCallBlock, ToolResultBlock
from picobot.config.schema import Config
from picobot.threads.store import ThreadStore

app = typer.Typer(
    name="picobot",
    help=f"{__logo__} picobot - conversational agent with persistent threads",
    no_args_is_help=True,
)
threads_app = typer.Typer(help="Inspect persisted conversation threads")
app.add_typer(threads_app, name="threads")

EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}


def _load(config_path: Path | None) -> Config:
    from picobot.config.loader import load_config

    return load_config(config_path)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{__logo__} picobot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
) -> None:
    """picobot - conversational agent with persistent threads."""
    pass


# ============================================================================
# Chat
# ============================================================================


@app.command()
def chat(
    thread: str = typer.Option(None, "--thread", "-t", help="Conversation id to resume"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show picobot runtime logs"),
) -> None:
    """Talk to the agent in this terminal."""
    from picobot.agent.loop import AgentLoop
    from picobot.bus.events import InboundMessage
    from picobot.bus.queue import MessageBus
    from picobot.providers.anthropic_provider import AnthropicProvider

    config = _load(config_path)
    if logs:
        logger.enable("picobot")
    else:
        logger.disable("picobot")

    provider_cfg = config.providers.anthropic
    if not provider_cfg.api_key:
        typer.echo("Error: No Anthropic API key configured.", err=True)
        typer.echo("Set ANTHROPIC_API_KEY or providers.anthropic.apiKey in ~/.picobot/config.json", err=True)
        raise typer.Exit(1)

    defaults = config.agents.defaults
    workspace = config.workspace_path
    workspace.mkdir(parents=True, exist_ok=True)
    conversation_id = thread or f"cli-{secrets.token_hex(4)}"

    async def run_chat() -> None:
        bus = MessageBus()
        agent = AgentLoop(
            bus=bus,
            provider=AnthropicProvider(
                api_key=provider_cfg.api_key,
                api_base=provider_cfg.api_base,
                default_model=defaults.model,
                request_timeout=provider_cfg.request_timeout,
            ),
            workspace=workspace,
            store=ThreadStore(config.threads_path),
            model=defaults.model,
            max_tokens=defaults.max_tokens,
            system_prompt=defaults.system_prompt,
            exec_config=config.tools.exec,
            restrict_to_workspace=config.tools.restrict_to_workspace,
            allow_from=config.allow_from,
            max_pending=config.storage.max_pending,
        )

        async def print_outbound() -> None:
            while True:
                msg = await bus.consume_outbound()
                typer.echo(f"\n{__logo__} {msg.content}\n")

        printer = asyncio.create_task(print_outbound())
        typer.echo(f"{__logo__} Thread {conversation_id} (type 'exit' to quit)\n")
        try:
            while True:
                try:
                    text = await asyncio.to_thread(input, "You: ")
                except EOFError:
                    break
                if text.strip().lower() in EXIT_COMMANDS:
                    break
                if not text.strip():
                    continue

                task = agent.handle_inbound(
                    InboundMessage(
                        channel="cli",
                        sender_id="user",
                        chat_id="direct",
                        content=text,
                        message_id=f"{datetime.now().timestamp():.6f}",
                        thread_id=conversation_id,
                    )
                )
                await agent.scheduler.wait_idle(conversation_id)
                _report_failure(task)
                # Let the printer flush replies before prompting again.
                while bus.outbound_size:
                    await asyncio.sleep(0.05)
        finally:
            printer.cancel()

    asyncio.run(run_chat())
    typer.echo("Goodbye!")


def _report_failure(task: asyncio.Task[None] | None) -> None:
    """Print why a finished thread loop stopped, if it failed."""
    if task is None or not task.done() or task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        typer.echo(f"Error: {exc}", err=True)
        typer.echo("Your message is kept and will be retried with the next one.", err=True)


# ============================================================================
# Threads
# ============================================================================


@threads_app.command("list")
def threads_list(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
) -> None:
    """List persisted threads, most recent first."""
    config = _load(config_path)
    threads = ThreadStore(config.threads_path).list_threads()
    if not threads:
        typer.echo("No threads yet.")
        return

    for info in threads:
        updated = datetime.fromtimestamp(info["updated_at"]).strftime("%Y-%m-%d %H:%M")
        typer.echo(f"{info['id']}\t{info['channel']}\t{info['messages']} messages\t{updated}")


@threads_app.command("show")
def threads_show(
    thread_id: str = typer.Argument(..., help="Conversation id"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
) -> None:
    """Print the messages of one thread."""
    config = _load(config_path)
    thread = ThreadStore(config.threads_path).load(thread_id)
    if thread is None:
        typer.echo(f"Thread not found: {thread_id}", err=True)
        raise typer.Exit(1)
    typer.echo(_render_thread(thread))


def _render_thread(thread: Thread) -> str:
    lines = [f"Thread {thread.id} ({thread.channel})"]
    for message in thread.messages:
        for block in message.content:
            if isinstance(block, TextBlock):
                lines.append(f"[{message.role}] {block.text}")
            elif isinstance(block, ToolCallBlock):
                lines.append(f"[{message.role}] -> {block.name}({block.input}) #{block.id}")
            elif isinstance(block, ToolResultBlock):
                marker = "error" if block.error else "result"
                lines.append(f"[{message.role}] <- {marker} #{block.tool_call_id}: {block.content}")
    return "\n".join(lines)


if __name__ == "__main__":
    app()
