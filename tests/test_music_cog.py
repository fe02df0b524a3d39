"""
Unit Tests for MusicCog and the voice guards

Tests for the slash commands and the session they manage:
- /play: voice checks, permissions, joining, session reuse, queueing, dashboard embed
- /skip: no session, nothing playing, skipping the current track
- /stop: channel checks and session teardown
- send_ephemeral / get_voice_channel guards

The registry is real (backed by fake pipeline and sink); Discord objects are mocked.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest
import pytest_asyncio

from conftest import FakePipeline, FakeSink, drain
from legato.application.services.session_registry import SessionRegistry
from legato.config.settings import GatewaySettings, SessionSettings
from legato.domain.music.value_objects import PlaybackState
from legato.domain.shared.messages import DiscordUIMessages
from legato.infrastructure.discord.cogs import music_cog
from legato.infrastructure.discord.cogs.music_cog import (
    MusicCog,
    build_dashboard_view,
    build_session_embed,
)
from legato.infrastructure.discord.guards.voice_guards import get_voice_channel, send_ephemeral

GUILD_ID = 111111111
CHANNEL_ID = 444444444

# =============================================================================
# Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def registry(resolver):
    reg = SessionRegistry(
        resolver=resolver,
        pipeline_factory=FakePipeline,
        settings=SessionSettings(tick_interval_seconds=3600),
    )
    yield reg
    reg.destroy_all()


@pytest.fixture
def sinks():
    """Replace DiscordVoiceSink with FakeSink and collect the instances."""
    created: list[FakeSink] = []

    def make_sink(voice_client):
        sink = FakeSink()
        created.append(sink)
        return sink

    with patch.object(music_cog, "DiscordVoiceSink", side_effect=make_sink):
        yield created


@pytest.fixture
def mock_container(registry):
    """Create a mock DI container around a real registry."""
    container = MagicMock()
    container.session_registry = registry
    container.voice_connector = MagicMock()
    container.voice_connector.connect = AsyncMock(return_value=MagicMock(spec=discord.VoiceClient))
    container.settings = MagicMock()
    container.settings.gateway = GatewaySettings(dashboard_url="https://dash.example.com")
    return container


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.user = None
    return bot


@pytest.fixture
def cog(mock_bot, mock_container, sinks):
    return MusicCog(mock_bot, mock_container)


@pytest.fixture
def voice_channel():
    channel = MagicMock(spec=discord.VoiceChannel)
    channel.id = CHANNEL_ID
    channel.name = "General"
    channel.permissions_for.return_value = MagicMock(connect=True, speak=True)
    return channel


@pytest.fixture
def mock_interaction(voice_channel):
    """Create a mock Discord Interaction whose response flips to done once deferred."""
    interaction = MagicMock(spec=discord.Interaction)
    interaction.response = MagicMock()
    interaction.response.is_done.return_value = False
    interaction.response.send_message = AsyncMock()

    async def defer(*args, **kwargs):
        interaction.response.is_done.return_value = True

    interaction.response.defer = AsyncMock(side_effect=defer)
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()

    interaction.guild = MagicMock()
    interaction.guild.id = GUILD_ID
    interaction.guild.name = "Test Guild"

    member = MagicMock(spec=discord.Member)
    member.id = 333333333
    member.display_name = "TestUser"
    member.name = "testuser"
    member.voice = MagicMock()
    member.voice.channel = voice_channel
    interaction.user = member

    return interaction


def _ephemeral_messages(interaction) -> list[str]:
    calls = interaction.followup.send.call_args_list + (
        interaction.response.send_message.call_args_list
    )
    return [c.args[0] for c in calls if c.kwargs.get("ephemeral")]


# =============================================================================
# /play
# =============================================================================


class TestPlayCommand:
    """Tests for /play."""

    @pytest.mark.asyncio
    async def test_creates_session_and_posts_link(self, cog, mock_interaction, registry):
        """Should join voice, open a session and post the dashboard link."""
        await cog.play.callback(cog, mock_interaction)

        session = registry.get_by_guild(GUILD_ID)
        assert session is not None
        assert session.channel_id == CHANNEL_ID

        mock_interaction.response.defer.assert_awaited_once()
        kwargs = mock_interaction.followup.send.call_args.kwargs
        embed, view = kwargs["embed"], kwargs["view"]
        assert embed.fields[0].value == f"`{session.id}`"
        assert view.children[0].url == f"https://dash.example.com/session/{session.id}"

    @pytest.mark.asyncio
    async def test_query_is_queued_and_played(self, cog, mock_interaction, registry, sinks):
        """Should queue the query for the caller and start playback."""
        await cog.play.callback(cog, mock_interaction, "lofi beats")

        player = registry.get_player(registry.get_by_guild(GUILD_ID).id)
        assert [t.title for t in player.queue.tracks] == ["lofi beats"]
        assert player.queue.tracks[0].requested_by == "TestUser"
        assert player.state is PlaybackState.PLAYING
        assert len(sinks[0].sources) == 1

    @pytest.mark.asyncio
    async def test_blank_query_only_posts_link(self, cog, mock_interaction, registry, resolver):
        """Should ignore whitespace-only queries."""
        await cog.play.callback(cog, mock_interaction, "   ")

        assert resolver.resolve_calls == []
        assert "embed" in mock_interaction.followup.send.call_args.kwargs

    @pytest.mark.asyncio
    async def test_failed_start_is_not_retried(self, cog, mock_interaction, registry, sinks):
        """Should leave a start that add_track attempted and lost to voice alone."""
        await cog.play.callback(cog, mock_interaction)
        sinks[0].connected = False

        await cog.play.callback(cog, mock_interaction, "lofi beats")

        player = registry.get_player(registry.get_by_guild(GUILD_ID).id)
        assert sinks[0].play_attempts == 1
        assert player.state is PlaybackState.IDLE
        assert [t.title for t in player.queue.tracks] == ["lofi beats"]

    @pytest.mark.asyncio
    async def test_idle_queue_with_history_plays_new_track(
        self, cog, mock_interaction, registry, sinks
    ):
        """Should start the new track when an earlier queue has already finished."""
        await cog.play.callback(cog, mock_interaction, "first")
        sinks[0].finish()
        await drain()
        player = registry.get_player(registry.get_by_guild(GUILD_ID).id)
        assert player.state is PlaybackState.IDLE

        await cog.play.callback(cog, mock_interaction, "second")

        assert player.state is PlaybackState.PLAYING
        assert player.current_track.title == "second"
        assert sinks[0].play_attempts == 2

    @pytest.mark.asyncio
    async def test_unresolvable_query(self, cog, mock_interaction, resolver):
        """Should tell the caller nothing was found and still post the link."""
        resolver.unresolvable.add("no such song")

        await cog.play.callback(cog, mock_interaction, "no such song")

        assert _ephemeral_messages(mock_interaction) == [
            DiscordUIMessages.ERROR_TRACK_NOT_FOUND.format(query="no such song")
        ]
        assert "embed" in mock_interaction.followup.send.call_args.kwargs

    @pytest.mark.asyncio
    async def test_reuses_existing_session(self, cog, mock_interaction, mock_container, registry):
        """Should not join voice again when the guild already has a session."""
        await cog.play.callback(cog, mock_interaction)
        await cog.play.callback(cog, mock_interaction, "second")

        assert len(registry) == 1
        mock_container.voice_connector.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requires_voice_channel(self, cog, mock_interaction, registry):
        """Should refuse callers outside voice."""
        mock_interaction.user.voice = None

        await cog.play.callback(cog, mock_interaction)

        assert _ephemeral_messages(mock_interaction) == [
            DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE
        ]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_requires_permissions(self, cog, mock_interaction, voice_channel, registry):
        """Should refuse channels the bot cannot speak in."""
        voice_channel.permissions_for.return_value = MagicMock(connect=True, speak=False)

        await cog.play.callback(cog, mock_interaction)

        assert _ephemeral_messages(mock_interaction) == [
            DiscordUIMessages.ERROR_MISSING_VOICE_PERMISSIONS
        ]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_join_failure(self, cog, mock_interaction, mock_container, registry):
        """Should report a failed voice join."""
        mock_container.voice_connector.connect.return_value = None

        await cog.play.callback(cog, mock_interaction)

        assert _ephemeral_messages(mock_interaction) == [
            DiscordUIMessages.ERROR_COULD_NOT_JOIN_VOICE
        ]
        assert len(registry) == 0


# =============================================================================
# /skip and /stop
# =============================================================================


class TestSkipCommand:
    """Tests for /skip."""

    @pytest.mark.asyncio
    async def test_no_session(self, cog, mock_interaction):
        """Should explain there is no session."""
        await cog.skip.callback(cog, mock_interaction)
        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.STATE_NO_SESSION]

    @pytest.mark.asyncio
    async def test_nothing_playing(self, cog, mock_interaction):
        """Should explain nothing is playing."""
        await cog.play.callback(cog, mock_interaction)
        mock_interaction.followup.send.reset_mock()

        await cog.skip.callback(cog, mock_interaction)

        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.STATE_NOTHING_PLAYING]

    @pytest.mark.asyncio
    async def test_skips_current_track(self, cog, mock_interaction, registry):
        """Should skip to the next track and confirm with the skipped title."""
        await cog.play.callback(cog, mock_interaction, "first")
        await cog.play.callback(cog, mock_interaction, "second")
        mock_interaction.followup.send.reset_mock()
        player = registry.get_player(registry.get_by_guild(GUILD_ID).id)

        mock_interaction.response.is_done.return_value = False
        await cog.skip.callback(cog, mock_interaction)
        await drain()

        assert mock_interaction.response.send_message.call_args.args[0] == (
            DiscordUIMessages.ACTION_SKIPPED.format(track_title="first")
        )
        assert player.current_track.title == "second"


class TestStopCommand:
    """Tests for /stop."""

    @pytest.mark.asyncio
    async def test_no_session(self, cog, mock_interaction):
        """Should explain there is no session."""
        await cog.stop.callback(cog, mock_interaction)
        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.STATE_NO_SESSION]

    @pytest.mark.asyncio
    async def test_other_channel(self, cog, mock_interaction, registry):
        """Should only accept /stop from the session's voice channel."""
        await cog.play.callback(cog, mock_interaction)
        mock_interaction.followup.send.reset_mock()
        mock_interaction.user.voice.channel = MagicMock(id=999)

        await cog.stop.callback(cog, mock_interaction)

        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.STATE_NOT_SAME_CHANNEL]
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_destroys_session(self, cog, mock_interaction, registry, sinks):
        """Should destroy the session and release voice."""
        await cog.play.callback(cog, mock_interaction, "song")
        mock_interaction.followup.send.reset_mock()

        await cog.stop.callback(cog, mock_interaction)

        assert len(registry) == 0
        assert sinks[0].closed
        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.ACTION_STOPPED]


# =============================================================================
# Embeds and guards
# =============================================================================


class TestEmbeds:
    """Tests for the session embed and dashboard button."""

    @pytest.mark.asyncio
    async def test_session_embed(self, registry):
        """Should show the id, channel and dashboard link."""
        session = registry.create_session(1, "Guild", 2, "Lounge", FakeSink())
        bot_user = MagicMock()
        bot_user.display_avatar.url = "https://cdn.example.com/avatar.png"

        embed = build_session_embed(session, "https://dash.example.com/session/x", bot_user)

        assert [f.value for f in embed.fields[:2]] == [f"`{session.id}`", "Lounge"]
        assert "https://dash.example.com/session/x" in embed.fields[2].value
        assert embed.thumbnail.url == "https://cdn.example.com/avatar.png"

    @pytest.mark.asyncio
    async def test_dashboard_view(self):
        """Should carry a single link button."""
        view = build_dashboard_view("https://dash.example.com/session/x")
        assert len(view.children) == 1
        assert view.children[0].style is discord.ButtonStyle.link


class TestGuards:
    """Tests for the shared voice guards."""

    @pytest.mark.asyncio
    async def test_send_ephemeral_before_and_after_response(self, mock_interaction):
        """Should use the response first and the followup afterwards."""
        await send_ephemeral(mock_interaction, "one")
        mock_interaction.response.is_done.return_value = True
        await send_ephemeral(mock_interaction, "two")

        mock_interaction.response.send_message.assert_awaited_once_with("one", ephemeral=True)
        mock_interaction.followup.send.assert_awaited_once_with("two", ephemeral=True)

    @pytest.mark.asyncio
    async def test_server_only(self, mock_interaction):
        """Should reject direct messages."""
        mock_interaction.guild = None
        assert await get_voice_channel(mock_interaction) is None
        assert _ephemeral_messages(mock_interaction) == [DiscordUIMessages.STATE_SERVER_ONLY]

    @pytest.mark.asyncio
    async def test_non_member(self, mock_interaction):
        """Should reject users that are not guild members."""
        mock_interaction.user = MagicMock(spec=discord.User)
        assert await get_voice_channel(mock_interaction) is None
        assert _ephemeral_messages(mock_interaction) == [
            DiscordUIMessages.STATE_VERIFY_VOICE_FAILED
        ]


@pytest.mark.asyncio
async def test_setup_requires_container():
    """Should refuse to load without a container on the bot."""
    bot = MagicMock(spec=["add_cog"])
    with pytest.raises(RuntimeError):
        await music_cog.setup(bot)
