"""Command-line interface for the Tabletop AI Assistant."""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from .assistant import AssistantContext, create_assistant
from .config import AppConfig, load_config
from .entity_store import InMemoryEntityStore
from .errors import AssistantError
from .logging_utils import setup_logging
from .permissions import PermissionLevel, PermissionStore


logger = logging.getLogger(__name__)

LEVEL_CHOICES = click.Choice(list(PermissionLevel.__members__), case_sensitive=False)
EXIT_COMMANDS = ("quit", "exit")


def async_command(f):
    """Decorator to run async commands in the event loop."""

    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))

    wrapper.__name__ = f.__name__
    wrapper.__doc__ = f.__doc__
    return wrapper


class EchoSink:
    """Prints assistant responses to the terminal."""

    async def send(self, text: str) -> None:
        click.echo(text)


def _load_world(path: Optional[str]) -> InMemoryEntityStore:
    seed: Dict[str, List[Dict[str, Any]]] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            seed = json.load(f)
    return InMemoryEntityStore(seed)


def _build(ctx: click.Context, world_file: Optional[str], level: Optional[str]) -> AssistantContext:
    app_config: AppConfig = ctx.obj["config"]
    assistant = create_assistant(
        app_config,
        entity_store=_load_world(world_file),
        message_sink=EchoSink(),
    )
    if level:
        assistant.permissions.set_level(level.upper(), actor="cli", reason="command line")
    return assistant


@click.group()
@click.option('--log-level', default=None, help='Logging level (DEBUG, INFO, WARNING, ERROR)')
@click.option('--config', '--config-file', help='Path to configuration file (YAML or JSON)')
@click.pass_context
def cli(ctx, log_level: Optional[str], config: Optional[str]):
    """Tabletop AI Assistant - chat commands and conversation for virtual tabletops."""
    ctx.ensure_object(dict)

    try:
        app_config = load_config(config_file=config)
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    ctx.obj['config'] = app_config

    # CLI flag overrides config
    setup_logging(log_level or app_config.log_level)


@cli.command()
@click.argument('text')
@click.option('--speaker', default='player', help='Name of the message author')
@click.option('--type', 'message_type', default=None, help='Message type (ic, ooc, ...)')
@click.option('--level', type=LEVEL_CHOICES, default=None, help='Permission level to apply first')
@click.option('--world', 'world_file', type=click.Path(exists=True), help='JSON file seeding the world entities')
@click.pass_context
@async_command
async def send(ctx, text: str, speaker: str, message_type: Optional[str], level: Optional[str], world_file: Optional[str]):
    """Route a single chat message and print the response."""
    try:
        assistant = _build(ctx, world_file, level)
    except (AssistantError, OSError, ValueError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    async with assistant:
        result = await assistant.handle_message(text, speaker, message_type)
        if not result.responded:
            click.echo(f"(no response: {result.kind.value})")


@cli.command()
@click.option('--speaker', default='player', help='Name of the message author')
@click.option('--type', 'message_type', default='ooc', help='Message type for plain lines')
@click.option('--level', type=LEVEL_CHOICES, default=None, help='Permission level to apply first')
@click.option('--world', 'world_file', type=click.Path(exists=True), help='JSON file seeding the world entities')
@click.pass_context
@async_command
async def chat(ctx, speaker: str, message_type: str, level: Optional[str], world_file: Optional[str]):
    """Start an interactive chat session against an in-memory world."""
    try:
        assistant = _build(ctx, world_file, level)
    except (AssistantError, OSError, ValueError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    prefix = assistant.router.prefix
    click.echo(f"🤖 Tabletop AI Assistant - type '{prefix} help' for commands, 'quit' to exit")

    async with assistant:
        while True:
            try:
                line = click.prompt(speaker, default="", show_default=False, prompt_suffix="> ")
            except (EOFError, click.Abort):
                click.echo()
                break

            line = line.strip()
            if not line:
                continue
            if line.lower() in EXIT_COMMANDS:
                break

            await assistant.handle_message(line, speaker, message_type)

    click.echo("👋 Goodbye!")


@cli.command()
def levels():
    """List the permission tiers."""
    for info in PermissionStore().available_levels():
        click.echo(f"{info.key:<9} {info.name} ({info.capability_count} capabilities)")
        click.echo(f"          {info.description}")


if __name__ == '__main__':
    cli()
