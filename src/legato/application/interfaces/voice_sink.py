"""Port interface for the voice connection that consumes a session's audio."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import discord

AfterCallback = Callable[[Exception | None], None]
"""Called once when a source stops, possibly from the audio thread."""


class VoiceSink(ABC):
    """One guild's voice connection as seen by the playback state machine."""

    @abstractmethod
    def play(self, source: "discord.AudioSource", after: AfterCallback) -> None:
        """Start sending ``source``; ``after`` fires when it finishes or is stopped."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the current source; triggers its ``after`` callback."""
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def is_playing(self) -> bool:
        ...

    @abstractmethod
    async def wait_until_connected(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for a dropped connection to come back."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the voice connection. Must not block; idempotent."""
        ...
