from .client import DiscordBotClient, incoming_from_discord

__all__ = ["DiscordBotClient", "incoming_from_discord"]
