"""Errors reported to callers of the conversation manager."""


class ConversationError(Exception):
    """Base class for conversation manager errors."""


class NotFoundError(ConversationError):
    """A referenced conversation, agent or backend does not exist."""


class ConversationNotFoundError(NotFoundError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class AgentNotFoundError(NotFoundError):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class BackendNotFoundError(NotFoundError):
    def __init__(self, provider_id: str):
        super().__init__(f"No completion backend registered for provider: {provider_id}")
        self.provider_id = provider_id


class NoAgentSpecifiedError(ConversationError):
    """A turn names no agent and the conversation has none bound."""

    def __init__(self, conversation_id: str):
        super().__init__(f"No agent specified for conversation: {conversation_id}")
        self.conversation_id = conversation_id
