"""
Application Layer

Contains the playback state machine and the session registry, and the port
interfaces they depend on.

Structure:
- services/: MusicPlayer and SessionRegistry
- interfaces/: Port interfaces for infrastructure adapters
"""
