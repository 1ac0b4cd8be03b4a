"""Error taxonomy shared by ports, adapters and use cases."""


class DuologError(Exception):
    """Base class for all duolog errors."""


class StreamError(DuologError):
    """The token source failed or disconnected mid-session."""


class SessionStartError(StreamError):
    """The token source could not be started."""


class TranslationError(DuologError):
    """The translation backend call failed or returned unusable content."""
