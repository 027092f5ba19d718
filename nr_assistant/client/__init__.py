"""HTTP client for the assistant backend."""

from nr_assistant.client.assistant_client import AssistantClient, is_error
from nr_assistant.config import AssistantSettings

__all__ = ["AssistantClient", "AssistantSettings", "is_error"]
