from .bot_init import ModLogsBot, bot
from .services_init import ModLogsServices, build_services

__all__ = ["ModLogsBot", "bot", "ModLogsServices", "build_services"]
