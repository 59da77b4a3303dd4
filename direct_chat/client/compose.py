"""Outbound message validation and emission."""
from ..shared.schemas import OutboundMessage
from ..shared.utils import is_blank
from .connection import ConnectionManager
from .errors import InvalidInput, NotConnected
from .logging_config import configure_logging
from .models import ConnectionState, Selection

logger = configure_logging()


class ComposePipeline:
    """Sends drafts to the selected peer.

    Nothing is appended to the thread here: a sent message shows up only
    when the server echoes it back over the push channel.
    """

    def __init__(self, connection: ConnectionManager, selection: Selection):
        self.connection = connection
        self.selection = selection

    async def send(self, text: str) -> OutboundMessage:
        if is_blank(text):
            raise InvalidInput("Message text is empty")
        peer_id = self.selection.peer_id
        if peer_id is None:
            raise InvalidInput("No conversation selected")
        identity = self.connection.bound_identity
        if identity is None or self.connection.state != ConnectionState.REGISTERED:
            raise NotConnected("Connection is not registered")
        draft = OutboundMessage(from_user_id=identity.id, to_user_id=peer_id, text=text.strip())
        await self.connection.send_outbound(draft)
        logger.info("MESSAGE_SENT from_user_id=%s to_user_id=%s", identity.id, peer_id)
        return draft
