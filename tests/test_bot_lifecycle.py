"""
Unit Tests for Bot Lifecycle

Tests for:
- MusicBot construction (intents, prefix, container wiring)
- setup_hook ordering: container init, cog loading, optional command sync
- Cog loading that survives individual failures
- Slash command sync for test guilds and globally
- The global app command error handler
- Presence on ready
- close(): container shutdown before voice clients are dropped
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import discord
import pytest
from discord import app_commands

from legato.domain.shared.exceptions import InvalidRangeError
from legato.domain.shared.messages import DiscordUIMessages
from legato.infrastructure.discord.bot import COGS, MusicBot, create_bot


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.discord.command_prefix = "!"
    settings.discord.sync_on_startup = False
    settings.discord.test_guild_ids = ()
    return settings


@pytest.fixture
def mock_container():
    container = MagicMock()
    container.initialize = AsyncMock()
    container.shutdown = AsyncMock()
    return container


@pytest.fixture
def bot(mock_container, mock_settings):
    return MusicBot(container=mock_container, settings=mock_settings)


def _interaction(*, done: bool = False) -> MagicMock:
    interaction = MagicMock()
    interaction.response.is_done.return_value = done
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    interaction.command.name = "play"
    return interaction


# =============================================================================
# Initialization
# =============================================================================


class TestBotInitialization:
    """Tests for MusicBot construction."""

    @pytest.mark.asyncio
    async def test_intents(self, bot):
        """Should request guild and voice state intents only."""
        assert bot.intents.voice_states is True
        assert bot.intents.guilds is True
        assert bot.intents.message_content is False

    @pytest.mark.asyncio
    async def test_prefix_and_help(self, mock_container, mock_settings):
        """Should take the prefix from settings and drop the default help."""
        mock_settings.discord.command_prefix = "?"
        bot = MusicBot(container=mock_container, settings=mock_settings)

        assert bot.command_prefix == "?"
        assert bot.help_command is None

    @pytest.mark.asyncio
    async def test_registers_with_container(self, bot, mock_container, mock_settings):
        """Should store its dependencies and hand itself to the container."""
        assert bot.container is mock_container
        assert bot.settings is mock_settings
        assert isinstance(bot._shutdown_event, asyncio.Event)
        mock_container.set_bot.assert_called_once_with(bot)

    @pytest.mark.asyncio
    async def test_create_bot(self, mock_container, mock_settings):
        """Should build a MusicBot from the factory."""
        bot = create_bot(mock_container, mock_settings)
        assert isinstance(bot, MusicBot)
        assert bot.container is mock_container


# =============================================================================
# setup_hook
# =============================================================================


class TestSetupHook:
    """Tests for MusicBot.setup_hook."""

    @pytest.mark.asyncio
    async def test_initializes_then_loads_cogs(self, bot, mock_container):
        """Should start the container before loading cogs."""
        order = []
        mock_container.initialize.side_effect = lambda: order.append("initialize")

        async def load():
            order.append("load_cogs")

        with patch.object(bot, "_load_cogs", side_effect=load):
            await bot.setup_hook()

        assert order == ["initialize", "load_cogs"]
        assert bot.tree.on_error == bot._on_app_command_error

    @pytest.mark.asyncio
    async def test_container_failure_propagates(self, bot, mock_container):
        """Should refuse to start when the container fails."""
        mock_container.initialize.side_effect = OSError("port in use")

        with patch.object(bot, "_load_cogs", new_callable=AsyncMock) as mock_load:
            with pytest.raises(OSError, match="port in use"):
                await bot.setup_hook()

        mock_load.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("enabled", [True, False])
    async def test_sync_on_startup(self, bot, mock_settings, enabled):
        """Should sync commands only when enabled."""
        mock_settings.discord.sync_on_startup = enabled

        with (
            patch.object(bot, "_load_cogs", new_callable=AsyncMock),
            patch.object(bot, "_sync_commands", new_callable=AsyncMock) as mock_sync,
        ):
            await bot.setup_hook()

        assert mock_sync.called is enabled

    @pytest.mark.asyncio
    async def test_sync_failure_is_tolerated(self, bot, mock_settings):
        """Should keep starting when the sync fails."""
        mock_settings.discord.sync_on_startup = True

        with (
            patch.object(bot, "_load_cogs", new_callable=AsyncMock),
            patch.object(
                bot, "_sync_commands", new_callable=AsyncMock, side_effect=RuntimeError("boom")
            ),
        ):
            await bot.setup_hook()


# =============================================================================
# Cogs and command sync
# =============================================================================


class TestLoadCogs:
    """Tests for MusicBot._load_cogs."""

    @pytest.mark.asyncio
    async def test_loads_all_cogs(self, bot):
        """Should load the music and event cogs."""
        with patch.object(bot, "load_extension", new_callable=AsyncMock) as mock_load:
            await bot._load_cogs()

        assert [c.args[0] for c in mock_load.call_args_list] == list(COGS)

    @pytest.mark.asyncio
    async def test_continues_after_failure(self, bot):
        """Should keep loading after one cog fails."""
        with patch.object(
            bot,
            "load_extension",
            new_callable=AsyncMock,
            side_effect=[RuntimeError("bad cog"), None],
        ) as mock_load:
            await bot._load_cogs()

        assert mock_load.call_count == len(COGS)


class TestSyncCommands:
    """Tests for MusicBot._sync_commands."""

    @pytest.mark.asyncio
    async def test_global_sync(self, bot):
        """Should sync the global tree."""
        with patch.object(
            bot.tree, "sync", new_callable=AsyncMock, return_value=[MagicMock()]
        ) as mock_sync:
            await bot._sync_commands()

        mock_sync.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_test_guilds_first(self, bot, mock_settings):
        """Should copy and sync to each test guild before the global sync."""
        mock_settings.discord.test_guild_ids = (111, 222)

        with (
            patch.object(bot.tree, "copy_global_to") as mock_copy,
            patch.object(bot.tree, "sync", new_callable=AsyncMock, return_value=[]) as mock_sync,
        ):
            await bot._sync_commands()

        assert mock_copy.call_count == 2
        guild_ids = [c.kwargs["guild"].id for c in mock_sync.call_args_list[:2]]
        assert guild_ids == [111, 222]
        assert mock_sync.call_args_list[-1].kwargs == {}

    @pytest.mark.asyncio
    async def test_http_errors_are_tolerated(self, bot, mock_settings):
        """Should log guild and global sync failures without raising."""
        mock_settings.discord.test_guild_ids = (111,)
        error = discord.HTTPException(MagicMock(status=500, reason="Server Error"), "failed")

        with (
            patch.object(bot.tree, "copy_global_to"),
            patch.object(bot.tree, "sync", new_callable=AsyncMock, side_effect=error) as mock_sync,
        ):
            await bot._sync_commands()

        assert mock_sync.await_count == 2


# =============================================================================
# Error handler and presence
# =============================================================================


class TestAppCommandErrorHandler:
    """Tests for MusicBot._on_app_command_error."""

    @pytest.mark.asyncio
    async def test_sends_ephemeral_response(self, bot):
        """Should answer the interaction with an ephemeral error."""
        interaction = _interaction()

        await bot._on_app_command_error(interaction, Exception("Test error"))

        call = interaction.response.send_message.call_args
        assert call.kwargs["ephemeral"] is True
        assert "Test error" in call.args[0]

    @pytest.mark.asyncio
    async def test_uses_followup_when_responded(self, bot):
        """Should use the followup once the interaction was deferred."""
        interaction = _interaction(done=True)

        await bot._on_app_command_error(interaction, Exception("Test error"))

        interaction.followup.send.assert_awaited_once()
        interaction.response.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_unwraps_original_error(self, bot):
        """Should report the wrapped exception."""
        interaction = _interaction()
        wrapper = MagicMock()
        wrapper.original = ValueError("Original error")

        await bot._on_app_command_error(interaction, wrapper)

        assert "Original error" in interaction.response.send_message.call_args.args[0]

    @pytest.mark.asyncio
    async def test_domain_error_message_is_shown(self, bot, caplog):
        """Should show a domain error's own message and log it as a warning."""
        interaction = _interaction()
        error = app_commands.CommandInvokeError(
            MagicMock(), InvalidRangeError("position", 999, "Position is past the end")
        )

        with caplog.at_level(logging.WARNING):
            await bot._on_app_command_error(interaction, error)

        interaction.response.send_message.assert_awaited_once_with(
            DiscordUIMessages.ERROR_REQUEST_REJECTED.format(message="Position is past the end"),
            ephemeral=True,
        )
        assert all(r.levelno == logging.WARNING for r in caplog.records)

    @pytest.mark.asyncio
    async def test_send_failure_is_tolerated(self, bot):
        """Should not raise when the error reply itself fails."""
        interaction = _interaction()
        interaction.response.send_message.side_effect = discord.HTTPException(
            MagicMock(status=404, reason="Not Found"), "Unknown interaction"
        )

        await bot._on_app_command_error(interaction, Exception("Test error"))


class TestOnReady:
    """Tests for MusicBot.on_ready."""

    @pytest.mark.asyncio
    async def test_sets_presence(self, bot):
        """Should show a listening presence pointing at /play."""
        with (
            patch.object(type(bot), "user", PropertyMock(return_value=MagicMock(id=1))),
            patch.object(type(bot), "guilds", PropertyMock(return_value=[MagicMock()])),
            patch.object(bot, "change_presence", new_callable=AsyncMock) as mock_change,
        ):
            await bot.on_ready()

        activity = mock_change.call_args.kwargs["activity"]
        assert activity.type == discord.ActivityType.listening
        assert activity.name == "/play"


# =============================================================================
# close
# =============================================================================


class TestBotClose:
    """Tests for MusicBot.close."""

    @pytest.mark.asyncio
    async def test_shuts_down_container_before_voice(self, bot, mock_container):
        """Should end sessions before dropping voice clients."""
        order = []
        mock_container.shutdown.side_effect = lambda: order.append("shutdown")
        vc = MagicMock()
        vc.disconnect = AsyncMock(side_effect=lambda force: order.append("disconnect"))

        with patch.object(type(bot), "voice_clients", PropertyMock(return_value=[vc])):
            await bot.close()

        assert order == ["shutdown", "disconnect"]
        vc.disconnect.assert_awaited_once_with(force=True)
        assert bot._shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_container_error_is_tolerated(self, bot, mock_container):
        """Should finish closing when the container fails to shut down."""
        mock_container.shutdown.side_effect = RuntimeError("boom")

        with patch.object(type(bot), "voice_clients", PropertyMock(return_value=[])):
            await bot.close()

        assert bot._shutdown_event.is_set()

    @pytest.mark.asyncio
    async def test_voice_disconnect_error_is_tolerated(self, bot):
        """Should keep closing when a voice client refuses to disconnect."""
        vc = MagicMock()
        vc.disconnect = AsyncMock(side_effect=discord.ClientException("gone"))

        with patch.object(type(bot), "voice_clients", PropertyMock(return_value=[vc])):
            await bot.close()

        assert bot._shutdown_event.is_set()
