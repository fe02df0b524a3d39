"""Discord bot wiring: the container lifecycle, cog loading, command sync and shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from legato.domain.shared.constants import UIConstants
from legato.domain.shared.exceptions import DomainError
from legato.domain.shared.messages import DiscordUIMessages, LogTemplates
from legato.infrastructure.discord.guards import send_ephemeral

if TYPE_CHECKING:
    from ...config.container import Container
    from ...config.settings import Settings

logger = logging.getLogger(__name__)

COGS: tuple[str, ...] = (
    "legato.infrastructure.discord.cogs.music_cog",
    "legato.infrastructure.discord.cogs.event_cog",
)


class MusicBot(commands.Bot):
    """Bot that owns the container and tears every session down on close."""

    def __init__(self, container: Container, settings: Settings, **kwargs) -> None:
        # Slash commands only: no message content or member list needed
        intents = discord.Intents.default()
        intents.voice_states = True
        intents.guilds = True

        super().__init__(
            command_prefix=settings.discord.command_prefix,
            intents=intents,
            help_command=None,
            **kwargs,
        )

        self.container = container
        self.settings = settings
        self._shutdown_event = asyncio.Event()
        container.set_bot(self)

    async def setup_hook(self) -> None:
        logger.info(LogTemplates.BOT_SETUP)

        try:
            await self.container.initialize()
        except Exception as e:
            logger.exception(LogTemplates.BOT_CONTAINER_INIT_FAILED, e)
            raise
        logger.info(LogTemplates.BOT_CONTAINER_INITIALIZED)

        await self._load_cogs()
        self.tree.on_error = self._on_app_command_error

        if self.settings.discord.sync_on_startup:
            try:
                await self._sync_commands()
            except Exception as e:
                logger.warning(LogTemplates.BOT_SYNC_ON_STARTUP_FAILED, e)

        logger.info(LogTemplates.BOT_SETUP_COMPLETE)

    async def _load_cogs(self) -> None:
        failed = 0
        for cog in COGS:
            try:
                await self.load_extension(cog)
            except Exception as e:
                logger.exception(LogTemplates.BOT_COG_LOAD_FAILED, cog, e)
                failed += 1
            else:
                logger.info(LogTemplates.BOT_COG_LOADED, cog)

        logger.info(LogTemplates.BOT_COGS_LOADED_SUMMARY, len(COGS) - failed, failed)

    async def _sync_commands(self) -> None:
        # Test guilds get the commands instantly; the global sync can take an hour
        for guild_id in self.settings.discord.test_guild_ids:
            guild = discord.Object(id=guild_id)
            try:
                self.tree.copy_global_to(guild=guild)
                synced = await self.tree.sync(guild=guild)
            except discord.HTTPException as e:
                logger.warning(LogTemplates.BOT_SYNC_GUILD_FAILED, guild_id, e)
            else:
                logger.info(LogTemplates.BOT_SYNCED_GUILD, len(synced), guild_id)

        try:
            synced = await self.tree.sync()
        except discord.HTTPException as e:
            logger.warning(LogTemplates.BOT_SYNC_GLOBAL_FAILED, e)
        else:
            logger.info(LogTemplates.BOT_SYNCED_GLOBAL, len(synced))

    async def _on_app_command_error(
        self, interaction: discord.Interaction, error: Exception
    ) -> None:
        """Reply to a failed slash command without posting to the channel.

        Domain errors carry a message meant for the user and are shown as-is.
        Anything else is logged with its traceback and reported generically.
        """
        original = getattr(error, "original", error)
        command = getattr(interaction.command, "name", "<unknown>")

        if isinstance(original, DomainError):
            logger.warning(LogTemplates.BOT_SLASH_COMMAND_REJECTED, command, original.message)
            message = DiscordUIMessages.ERROR_REQUEST_REJECTED.format(message=original.message)
        else:
            logger.error(
                LogTemplates.BOT_SLASH_COMMAND_ERROR,
                command,
                original,
                exc_info=original if isinstance(original, BaseException) else None,
            )
            message = DiscordUIMessages.ERROR_GENERIC.format(error=original)

        try:
            await send_ephemeral(interaction, message)
        except discord.HTTPException:
            logger.warning(LogTemplates.BOT_ERROR_MESSAGE_SEND_FAILED)

    async def on_ready(self) -> None:
        logger.info(LogTemplates.BOT_READY, self.user, self.user.id)  # type: ignore[union-attr]
        logger.info(LogTemplates.BOT_CONNECTED_GUILDS, len(self.guilds))
        logger.info(LogTemplates.BOT_ACTIVE_SESSIONS, len(self.container.session_registry))

        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.listening, name=UIConstants.PRESENCE_TEXT
            )
        )

    async def close(self) -> None:
        logger.info(LogTemplates.BOT_SHUTTING_DOWN)

        # Sessions broadcast their disconnect before the gateway goes away
        try:
            await self.container.shutdown()
        except Exception as e:
            logger.warning(LogTemplates.BOT_CONTAINER_SHUTDOWN_ERROR, e)
        else:
            logger.info(LogTemplates.BOT_CONTAINER_SHUTDOWN)

        await self._disconnect_voice_clients()
        await super().close()
        self._shutdown_event.set()
        logger.info(LogTemplates.BOT_SHUTDOWN_COMPLETE)

    async def _disconnect_voice_clients(self) -> None:
        for vc in list(self.voice_clients):
            try:
                await vc.disconnect(force=True)
            except discord.ClientException as e:
                logger.debug(LogTemplates.VOICE_CLIENT_ERROR, e)

    def _install_signal_handlers(self, shutdown_timeout: float) -> None:
        loop = asyncio.get_running_loop()

        async def graceful_close() -> None:
            try:
                await asyncio.wait_for(self.close(), timeout=shutdown_timeout)
            except TimeoutError:
                logger.warning(LogTemplates.BOT_SHUTDOWN_TIMEOUT, shutdown_timeout)

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(graceful_close()))

    def run_with_graceful_shutdown(self, token: str, *, shutdown_timeout: float = 30.0) -> None:
        """Run until SIGINT/SIGTERM, giving close() ``shutdown_timeout`` seconds to finish."""

        async def runner() -> None:
            async with self:
                self._install_signal_handlers(shutdown_timeout)
                await self.start(token)

        asyncio.run(runner())


def create_bot(container: Container, settings: Settings) -> MusicBot:
    return MusicBot(container=container, settings=settings)
