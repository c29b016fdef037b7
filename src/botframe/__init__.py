"""Plugin host and command dispatcher for Discord bots."""

__version__ = "0.3.0"
