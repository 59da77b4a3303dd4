"""Error taxonomy surfaced by the chat client core."""


class ChatError(Exception):
    """Base class for all client errors."""


class NotFound(ChatError):
    """Directory or login lookup returned no match."""


class AuthRejected(ChatError):
    """The server refused the stored credential."""


class NotConnected(ChatError):
    """An outbound message was attempted without a registered connection."""


class InvalidInput(ChatError):
    """Caller supplied input the core cannot act on."""


class TransportFailure(ChatError):
    """A request or the persistent connection failed."""


class Timeout(TransportFailure):
    """A request did not complete within the configured bound."""
