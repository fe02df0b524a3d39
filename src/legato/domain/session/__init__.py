"""
Session Bounded Context

One guild's shareable playback context and its public id.
"""

from legato.domain.session.entities import Session, generate_session_id

__all__ = ["Session", "generate_session_id"]
