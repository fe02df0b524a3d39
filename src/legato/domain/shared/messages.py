"""Centralized message constants for error messages, log templates, and user feedback."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Discord ID Validation Errors
    INVALID_SNOWFLAKE = "Discord snowflake ID must be positive"

    # Configuration Errors
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    INVALID_GATEWAY_PATH = "Gateway path must start with '/': {path}"

    # Audio/Stream Errors
    NO_STREAM_URL_FOR_TRACK = "No stream URL found for {url}"
    TRANSCODE_NOT_STARTED = "Transcode process has not been started"
    TRANSCODE_SPAWN_FAILED = "Failed to start ffmpeg: {error}"
    VOICE_SINK_CLOSED = "Voice connection is closed"
    VOICE_NOT_CONNECTED = "Voice connection was lost"

    # Dashboard Gateway Errors (sent to the requesting client)
    WS_INVALID_FORMAT = "Invalid message format"
    WS_NOT_CONNECTED = "Send a connect message with a sessionId first"
    WS_MAX_CLIENTS_REACHED = "Maximum number of dashboard connections reached for this session"
    WS_OPERATION_REJECTED = "Operation '{operation}' cannot be performed right now"
    WS_SEARCH_FAILED = "Search failed"
    LYRICS_NOT_FOUND = "Lyrics not found"

    # Attribution for tracks queued from a dashboard
    WEB_REQUESTER = "Web User"

    # Startup Errors
    DISCORD_TOKEN_REQUIRED = "DISCORD__TOKEN environment variable is required"
    BOT_NOT_INITIALIZED = "Bot not initialized. Call set_bot() first."
    CONTAINER_NOT_FOUND = "Container not found on bot instance"


class LogTemplates:
    """Log message templates for structured logging.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    for proper log formatting and structured logging support.
    """

    # Cache Operations
    CACHE_HIT = "Cache hit for '%s'"
    CACHE_EXPIRED_PRUNED = "Pruned %d expired cache entries"
    CACHE_CLEARED = "Cleared %d cache entries"

    # Resolution/Search
    YTDLP_NO_URL_IN_INFO_DICT = "No URL found in info dict"
    YTDLP_FAILED_INFO_TO_TRACK = "Failed to convert info to track"
    YTDLP_FAILED_EXTRACT_INFO = "Failed to extract info from %s"
    YTDLP_FAILED_SEARCH = "Failed to search for %r"
    YTDLP_SEARCH_SOURCE_UNSUPPORTED = "No yt-dlp search for source %r, returning no results"
    YTDLP_FAILED_EXTRACT_PLAYLIST = "Failed to extract playlist from %s"

    # FFmpeg/Audio Resource Management
    FFMPEG_SPAWNED = "Spawned ffmpeg (pid=%s)"
    FFMPEG_TERMINATED = "Terminated ffmpeg (pid=%s)"
    FFMPEG_PROCESS_CLEANUP_ERROR = "Error cleaning up process: %s"
    FFMPEG_KILLED = "ffmpeg (pid=%s) ignored SIGTERM for %ss, killing it"
    FFMPEG_REAPED = "Reaped ffmpeg (pid=%s, exit=%s)"
    FFMPEG_EXITED_ABNORMALLY = "ffmpeg exited with code %s in session %s"
    FFMPEG_NOT_FOUND = "ffmpeg executable %r not found on PATH; playback will fail"
    STREAM_SUPERSEDED = "Stream start for '%s' superseded (epoch %s)"
    STREAM_STARTED = "Streaming '%s' from %ss"

    # Voice/Audio Operations
    VOICE_CONNECTED = "Connected to voice channel %s in %s"
    VOICE_DISCONNECTED = "Disconnected from voice in guild %s"
    VOICE_MOVED = "Moved to voice channel %s"
    VOICE_CONNECTION_TIMEOUT = "Timeout connecting to channel %s"
    VOICE_NO_PERMISSION = "No permission to connect to channel %s"
    VOICE_CLIENT_ERROR = "Client error connecting: %r"
    VOICE_STALE_CLEANUP = "Found stale voice client in guild %s, cleaning up"
    VOICE_CLEANUP_ERROR = "Error during voice cleanup"
    VOICE_SELF_DEAFEN_FAILED = "Failed to self-deafen in guild %s: %r"
    VOICE_CHANNEL_EMPTY = "No listeners left in %s (guild %s), arming alone timer"
    VOICE_BOT_DISCONNECTED = "Bot was disconnected from voice in guild %s"
    VOICE_LISTENER_RETURNED = "Listener joined %s (guild %s), alone timer cancelled"
    GUILD_REMOVED = "Removed from guild %s (%s), ending its session"
    COMMAND_ERROR_UNHANDLED = "Unhandled prefix command error in '%s'"

    # Playback Operations
    PLAYBACK_PAUSED = "Paused playback in session %s"
    PLAYBACK_RESUMED = "Resumed playback in session %s"
    PLAYBACK_ERROR = "Playback error in session %s: %s"
    PLAYBACK_IGNORING_CALLBACK = "Ignoring stale stream-ended callback in session %s"
    VOLUME_CHANGED = "Volume set to %s in session %s"
    REPEAT_MODE_CHANGED = "Repeat mode changed to %s in session %s"
    PLAYER_DESTROYED = "Player destroyed for session %s"
    PLAYER_TASK_FAILED = "Background task failed in session %s: %r"
    LISTENER_FAILED = "Listener raised in %s for session %s"

    # Track Operations
    TRACK_STARTED = "Started playing '%s' at %ss in session %s"
    TRACK_REMOVED_WHILE_STARTING = "Track %s left the queue while starting in session %s"
    PLAYBACK_VOICE_LOST = "Cannot start %s in session %s, voice is down: %s"
    TRACK_SKIPPED = "Skipped %s in session %s"
    TRACK_ENDED = "Track ended: %s (%s) in session %s"
    TRACK_UNPLAYABLE = "Track '%s' is unplayable in session %s: %s"
    TRACK_RESOLVE_FAILED = "Could not resolve %r in session %s"

    # Queue Operations
    QUEUE_ENQUEUED = "Enqueued %d track(s) starting with '%s' in session %s"
    QUEUE_REMOVED = "Removed track %s from queue in session %s"
    QUEUE_MOVED = "Moved track from %s to %s in session %s"
    QUEUE_SHUFFLED = "Shuffled queue in session %s"
    QUEUE_FINISHED = "Queue finished in session %s"
    QUEUE_UNPLAYABLE = "Too many consecutive unplayable tracks in session %s, going idle"
    QUEUE_ADD_FAILED = "Could not queue %r in session %s: %s"

    # Session Lifecycle
    SESSION_CREATED = "Created session %s for guild %s (%s)"
    SESSION_DESTROYED = "Destroyed session %s (%s)"
    SESSIONS_EXPIRED_SWEPT = "Swept %d expired sessions"
    ALONE_TIMEOUT_ARMED = "Alone timer armed for session %s (%ss)"
    ALONE_TIMEOUT_CANCELLED = "Alone timer cancelled for session %s"
    ALONE_TIMEOUT_FIRED = "Alone timer fired for session %s"
    ALONE_TIMEOUT_CALLBACK_FAILED = "Alone timer callback failed for session %s"
    LISTENER_ATTACHED = "Listener attached to session %s"
    LISTENER_DETACHED = "Listener detached from session %s"
    VOICE_RECOVERY_STARTED = "Voice lost in session %s, waiting up to %ss for reconnection"
    VOICE_RECOVERED = "Voice recovered in session %s"

    # Session Sweeper
    SWEEPER_STARTED = "Session sweeper started"
    SWEEPER_STOPPED = "Session sweeper stopped"
    SWEEPER_ALREADY_RUNNING = "Session sweeper is already running"
    SWEEPER_CYCLE_FAILED = "Session sweep cycle failed"

    # Dashboard Gateway
    GATEWAY_STARTED = "Dashboard gateway listening on %s:%s%s"
    GATEWAY_STOPPED = "Dashboard gateway stopped"
    GATEWAY_STOP_FAILED = "Failed stopping dashboard gateway: %r"
    WS_CLIENT_OPENED = "Dashboard socket opened from %s"
    WS_CLIENT_CLOSED = "Dashboard socket from %s closed (code=%s)"
    WS_CLIENT_ERROR = "Dashboard socket error from %s: %r"
    WS_CLIENT_ADMITTED = "Dashboard %s joined session %s (%d connected)"
    WS_CLIENT_EVICTED = "Evicted unresponsive dashboard %s (session %s)"
    WS_CLIENT_TOO_SLOW = "Dashboard %s is not draining its queue, disconnecting"
    WS_POSITION_DROPPED = "Dropped position update for slow dashboard %s"
    WS_SEND_FAILED = "Send to dashboard %s failed"
    WS_WRITER_FAILED = "Writer for dashboard %s failed"
    WS_UNKNOWN_TYPE = "Unknown message type %r from %s"
    WS_SESSION_NOT_FOUND = "Session %s not found for dashboard %s"
    WS_MAX_CLIENTS_REACHED = "Session %s is full, rejecting dashboard %s"
    WS_SESSION_RELEASED = "Last dashboard left session %s"
    WS_SESSION_ENDED = "Session %s ended, disconnecting %d dashboard(s)"
    WS_ADD_TRACK = "Dashboard add_track %r in session %s"
    WS_SEARCH_FAILED = "Dashboard search failed for %r"
    WS_LYRICS_FAILED = "Lyrics lookup failed for %r by %r: %r"
    LYRICS_NOT_FOUND = "No lyrics found for %r by %r"
    LYRICS_REQUEST_FAILED = "Lyrics request failed for %s: %r"
    WS_TASK_FAILED = "Gateway task failed: %r"

    # Dashboard Client
    CLIENT_STATE_CHANGED = "Dashboard connection %s: %s -> %s"
    CLIENT_CONNECT_FAILED = "Could not connect to %s: %r"
    CLIENT_RECONNECTING = "Reconnecting to session %s in %.1fs (attempt %d)"
    CLIENT_RETRIES_EXHAUSTED = "Giving up on session %s after %d attempts"
    CLIENT_TERMINAL_CLOSE = "Session %s closed the connection with terminal code %s"
    CLIENT_SOCKET_ERROR = "Socket error on session %s: %r"
    CLIENT_BAD_FRAME = "Ignoring malformed frame on session %s"

    # Application Lifecycle
    BOT_STARTING = "Starting Legato in {environment} mode"
    BOT_SETUP = "Setting up bot..."
    BOT_CONTAINER_INITIALIZED = "Container initialized successfully"
    BOT_CONTAINER_INIT_FAILED = "Failed to initialize container: %s"
    BOT_SETUP_COMPLETE = "Bot setup complete"
    BOT_STARTING_RUN = "Starting bot..."
    BOT_DASHBOARD_URL = "Dashboard links point at %s"
    LOGGING_CONFIG_FALLBACK = "Could not load %s, falling back to console logging"
    BOT_STOPPED = "Bot stopped successfully"
    BOT_KEYBOARD_INTERRUPT = "Received keyboard interrupt, shutting down..."
    BOT_FATAL_ERROR = "Fatal error: %s"
    BOT_SHUTTING_DOWN = "Shutting down bot..."
    BOT_SHUTDOWN_TIMEOUT = "Graceful shutdown did not finish within %ss"
    BOT_CONTAINER_SHUTDOWN = "Container shutdown complete"
    BOT_CONTAINER_SHUTDOWN_ERROR = "Error during container shutdown: %s"
    BOT_SHUTDOWN_COMPLETE = "Bot shutdown complete"
    BOT_READY = "Bot ready as %s (%s)"
    BOT_CONNECTED_GUILDS = "Connected to %s guilds"
    BOT_ACTIVE_SESSIONS = "Serving %s active session(s)"

    # Bot Cog Management
    BOT_COG_LOADED = "Loaded cog: %s"
    BOT_COG_LOAD_FAILED = "Failed to load cog %s: %s"
    BOT_COGS_LOADED_SUMMARY = "Cogs loaded: %s success, %s failed"

    # Bot Command Sync
    BOT_SYNCED_GUILD = "Synced %s commands to guild %s"
    BOT_SYNC_GUILD_FAILED = "Failed to sync to guild %s: %s"
    BOT_SYNCED_GLOBAL = "Synced %s commands globally"
    BOT_SYNC_GLOBAL_FAILED = "Failed to sync commands globally: %s"
    BOT_SYNC_ON_STARTUP_FAILED = "Failed to sync commands on startup: %s"

    # Bot Error Handling
    BOT_SLASH_COMMAND_ERROR = "Slash command error in '%s': %s"
    BOT_SLASH_COMMAND_REJECTED = "Slash command '%s' rejected: %s"
    BOT_ERROR_MESSAGE_SEND_FAILED = "Failed to send error message to user"


class DiscordUIMessages:
    """User-facing Discord messages and responses.

    These strings are shown directly to users in Discord interactions.
    Keep them concise, friendly, and include appropriate emoji.
    """

    # Action Messages
    ACTION_SKIPPED = "⏭️ Skipped **{track_title}**."
    ACTION_STOPPED = "⏹️ Stopped playback and left the voice channel."

    # Error Messages
    ERROR_GENERIC = "❌ An error occurred: {error}"
    ERROR_REQUEST_REJECTED = "❌ {message}"
    ERROR_COULD_NOT_JOIN_VOICE = "❌ I couldn't join your voice channel."
    ERROR_MISSING_VOICE_PERMISSIONS = (
        "❌ I need permission to connect and speak in your voice channel."
    )
    ERROR_TRACK_NOT_FOUND = "❌ Couldn't find anything playable for: {query}"
    ERROR_QUEUE_FAILED = "❌ Couldn't add that track: {error}"
    ERROR_SKIP_FAILED = "❌ Couldn't skip right now."

    # State Messages
    STATE_SERVER_ONLY = "This command only works in a server."
    STATE_VERIFY_VOICE_FAILED = "Could not verify your voice status."
    STATE_NEED_TO_BE_IN_VOICE = "❌ Join a voice channel first!"
    STATE_NOT_SAME_CHANNEL = "❌ You need to be in the same voice channel as the bot."
    STATE_NO_SESSION = "❌ There is no active music session. Start one with `/play`."
    STATE_NOTHING_PLAYING = "❌ Nothing is playing right now."

    # Session Embed
    EMBED_SESSION_TITLE = "🎵 Legato Music Player"
    EMBED_SESSION_DESCRIPTION = "Control the music from the web dashboard!"
    EMBED_SESSION_FOOTER = "Legato"
    FIELD_SESSION_ID = "🔗 Session ID"
    FIELD_CHANNEL = "🔊 Channel"
    FIELD_DASHBOARD = "📱 Dashboard"
    DASHBOARD_LINK = "[Open the dashboard]({url})"
    BUTTON_OPEN_DASHBOARD = "Open dashboard"


class EmojiConstants:
    """Emoji constants for consistent UI across the application."""

    MUSIC = "🎵"
