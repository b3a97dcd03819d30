from __future__ import annotations


class SupportFlowError(Exception):
    pass


class NotFound(SupportFlowError):
    pass


class SessionNotFound(NotFound):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found or expired")
        self.session_id = session_id


class UnknownCategory(NotFound):
    pass


class UnknownQuestion(NotFound):
    pass


class ConversationClosed(SupportFlowError):
    """Input arrived for a session that already holds a resolution."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is already resolved")
        self.session_id = session_id


class ConfigurationError(SupportFlowError):
    """Static tree or path data is inconsistent. Raised at load time only."""


class AdapterUnavailable(SupportFlowError):
    pass
