"""
TF2 world tracker.

Follows Team Fortress 2's console log and keeps a live model of the current
session: players, lobby, chat, kills and Steam profile data.
"""

__version__ = "0.1.0"
