class ScrimBotError(Exception):
    """Base class for errors raised while handling a command."""


class UserInputError(ScrimBotError):
    """Bad input from the user. The message is shown to them as is."""


class NotFoundError(ScrimBotError):
    """A referenced scrim or preference doesn't exist."""


class TransientIOError(ScrimBotError):
    """A database call failed (wraps sqlite3.Error). Not retried."""
