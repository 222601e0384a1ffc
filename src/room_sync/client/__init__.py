"""
Room Sync Client Module

This module contains the connection-facing side of the client including:
- Transport session (websocket lifecycle and reconnection)
- Room session coordinator
- REST client for history and the room directory
"""

__all__ = []
