from typing import Optional


class ModLogsError(Exception):
    """Base class for every error raised by the relay."""


class ValidationError(ModLogsError):
    status_code = 400


class UnknownSubscriptionError(ValidationError):
    status_code = 404


class StaleMessageError(ValidationError):
    status_code = 400


class SignatureMismatchError(ValidationError):
    status_code = 403


class MalformedEventError(ValidationError):
    status_code = 400


class PersistenceError(ModLogsError):
    """The cache store or the document store could not be reached."""


class UpstreamProviderError(ModLogsError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SubscriptionError(ModLogsError):
    """Aggregate of failures collected while fanning out over subscription types."""

    def __init__(self, streamer_id: str, errors: list[Exception]):
        self.streamer_id = streamer_id
        self.errors = errors
        details = "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        super().__init__(
            f"{len(errors)} subscription call(s) failed for streamer {streamer_id}: {details}"
        )


class DestinationError(ModLogsError):
    def __init__(self, channel_id: str, message: str, permanent: bool = True):
        super().__init__(message)
        self.channel_id = channel_id
        self.permanent = permanent
