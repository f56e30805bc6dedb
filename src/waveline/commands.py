"""Built-in commands.

Each command is a plain object with an async ``execute(message, args,
context)`` and an optional ``permissions`` policy. Anything that loads
modules at runtime registers its own commands the same way.
"""

from __future__ import annotations

from waveline.core.errors import CommandError
from waveline.core.models import CommandContext, InboundMessage
from waveline.core.registry import CommandRegistry


class PingCommand:
    name = "ping"
    description = "Check that the bot is alive"
    permissions = "public"

    async def execute(self, message: InboundMessage, args: list[str], context: CommandContext) -> None:
        await context.bot.send_message(context.sender, "🏓 Pong!")


class HelpCommand:
    name = "help"
    description = "List available commands"
    permissions = "public"

    async def execute(self, message: InboundMessage, args: list[str], context: CommandContext) -> None:
        pipeline = context.bot
        prefix = pipeline.config.prefix
        if args:
            command = pipeline.registry.get(args[0])
            if command is None:
                raise CommandError(f"No such command: {args[0]}")
            description = getattr(command.handler, "description", "") or "No description"
            await pipeline.send_message(context.sender, f"*{prefix}{command.name}*: {description}")
            return

        lines = ["*Commands*"]
        for command in pipeline.registry:
            description = getattr(command.handler, "description", "")
            lines.append(f"{prefix}{command.name}" + (f" - {description}" if description else ""))
        await pipeline.send_message(context.sender, "\n".join(lines))


class WhoAmICommand:
    name = "whoami"
    description = "Show how the bot resolves your identity"
    permissions = "public"

    async def execute(self, message: InboundMessage, args: list[str], context: CommandContext) -> None:
        pipeline = context.bot
        pair = await pipeline.resolver.resolve_pair(context.participant)
        name = await pipeline.resolver.get_display_name(context.participant)
        lines = [
            f"Name: {name}",
            f"Phone: {pair.phone}",
            f"PN: {pair.pn or '-'}",
            f"LID: {pair.lid or '-'}",
        ]
        await pipeline.send_message(context.sender, "\n".join(lines))


BUILTIN_COMMANDS = (PingCommand, HelpCommand, WhoAmICommand)


def register_builtin_commands(registry: CommandRegistry) -> None:
    for command_cls in BUILTIN_COMMANDS:
        registry.register(command_cls.name, command_cls())
