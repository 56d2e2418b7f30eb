class ConversationError(Exception):
    """Base class for failures raised inside the conversation core."""


class StorageUnavailable(ConversationError):
    """The session backend could not be reached or timed out."""


class UpstreamUnavailable(ConversationError):
    """The record store (catalog, FAQs, audit tables) failed mid-dispatch."""


class MalformedSession(ConversationError):
    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Malformed session for {user_id}: {reason}")
