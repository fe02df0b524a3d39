#!/usr/bin/env python3
"""Entry point for the Legato music bot: logging setup, startup checks and the bot run."""

from __future__ import annotations

import json
import logging
import logging.config
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from legato.domain.shared.messages import ErrorMessages, LogTemplates
from legato.utils.logging import configure_console_logging, quiet_noisy_loggers

if TYPE_CHECKING:
    from legato.config.settings import Settings

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", config_path: Path = _LOGGING_CONFIG_PATH) -> None:
    """Apply ``logging_config.json``, or a colored console handler when it is unusable.

    ``log_level`` always wins over the level in the file.
    """
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        config = json.loads(Path(config_path).read_text())
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        configure_console_logging(resolved_level)
        logger.warning(LogTemplates.LOGGING_CONFIG_FALLBACK, config_path)

    logging.getLogger().setLevel(resolved_level)
    quiet_noisy_loggers()


def _check_environment(settings: Settings) -> bool:
    if not settings.discord.token.get_secret_value():
        logger.error(ErrorMessages.DISCORD_TOKEN_REQUIRED)
        return False

    # Missing ffmpeg only breaks playback; the bot and dashboard still start
    if shutil.which(settings.audio.ffmpeg_executable) is None:
        logger.warning(LogTemplates.FFMPEG_NOT_FOUND, settings.audio.ffmpeg_executable)
    return True


def main() -> int:
    from legato.config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    if not _check_environment(settings):
        return 1

    logger.info(LogTemplates.BOT_STARTING.format(environment=settings.environment))
    if settings.gateway.enabled:
        logger.info(LogTemplates.BOT_DASHBOARD_URL, settings.gateway.dashboard_url)

    from legato.config.container import create_container
    from legato.infrastructure.discord.bot import create_bot

    bot = create_bot(create_container(settings), settings)

    try:
        logger.info(LogTemplates.BOT_STARTING_RUN)
        bot.run_with_graceful_shutdown(settings.discord.token.get_secret_value())
    except KeyboardInterrupt:
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)
    except Exception as e:
        logger.exception(LogTemplates.BOT_FATAL_ERROR, e)
        return 1
    else:
        logger.info(LogTemplates.BOT_STOPPED)
    return 0


def cli() -> None:
    """Console script entry point (``legato`` in pyproject.toml)."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
