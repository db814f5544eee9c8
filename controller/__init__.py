from .twitch import twitch_router

__all__ = ["twitch_router"]
