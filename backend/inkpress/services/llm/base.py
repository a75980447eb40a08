"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, TypeVar

from pydantic import BaseModel

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass
class Message:
    role: str  # "user" | "assistant" | "system"
    content: str


class BaseLLMProvider(ABC):
    @abstractmethod
    def chat_stream(self, messages: list[Message]) -> AsyncIterator[str]:
        """Stream a chat response chunk by chunk."""
        ...

    @abstractmethod
    async def generate_structured(self, prompt: str, schema: type[SchemaT]) -> SchemaT:
        """Generate a single response that validates against a pydantic schema."""
        ...
