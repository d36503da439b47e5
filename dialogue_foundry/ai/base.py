"""Base classes for AI provider abstraction."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """Chat message passed to the model.

    Role is one of user, assistant or system. System messages carry retrieved
    context; the company prompt goes separately via the instructions parameter.
    """

    role: str
    content: str


class FunctionTool(BaseModel):
    """A function the model may call instead of answering in text."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(
        description="JSON schema of the function arguments"
    )


class FunctionCall(BaseModel):
    """A function call produced by the model, with its decoded arguments."""

    name: str
    arguments: dict[str, Any]


class AIProvider(ABC):
    """Abstract base class for AI providers.

    Keeps the chat pipeline independent of the concrete model API so tests can
    substitute a scripted provider.
    """

    @abstractmethod
    def stream_response(
        self,
        messages: list[ChatMessage],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a response as raw provider events.

        Events are plain dicts tagged by their `type` field. Interpreting them is
        left to the stream decoder.

        Args:
            messages: Conversation history, oldest first
            instructions: Optional system prompt/instructions
            model: Model name override
            temperature: Sampling temperature override

        Yields:
            dict[str, Any]: One provider event

        Raises:
            ModelStreamError: If the stream cannot be created or breaks mid-way
        """
        pass

    @abstractmethod
    async def generate_function_call(
        self,
        messages: list[ChatMessage],
        tools: list[FunctionTool],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        force_tool: str | None = None,
    ) -> FunctionCall | None:
        """Ask the model whether to call one of the given functions.

        Args:
            messages: Conversation to analyze
            tools: Functions the model may call
            instructions: Optional system prompt/instructions
            model: Model name override
            temperature: Sampling temperature override
            force_tool: Name of a tool the model must call

        Returns:
            FunctionCall | None: The first function call, or None if the model answered in text

        Raises:
            OpenAIContentGenerationError: If the request fails
        """
        pass
