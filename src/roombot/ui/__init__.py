"""HTTP interface for RoomBot."""

from roombot.ui.web_interface import SlashCommandInterface

__all__ = ["SlashCommandInterface"]
