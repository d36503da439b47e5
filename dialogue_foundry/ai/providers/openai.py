"""OpenAI provider implementation."""

import json
from typing import Any, AsyncIterator

import httpx
from openai import AsyncOpenAI
from openai.types.responses import EasyInputMessageParam, FunctionToolParam, Response

from dialogue_foundry.ai.base import AIProvider, ChatMessage, FunctionCall, FunctionTool
from dialogue_foundry.ai.openai.config import OpenAISettings
from dialogue_foundry.ai.openai.exceptions import (
    ModelStreamError,
    OpenAIAuthenticationError,
    OpenAIContentGenerationError,
)
from dialogue_foundry.utils.logger import logger

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(AIProvider):
    """OpenAI provider implementation.

    Uses the Responses API both for streamed chat replies and for one-shot
    function-call classification.
    """

    def __init__(self, settings: OpenAISettings, client: AsyncOpenAI | None = None):
        """Initialize OpenAI provider.

        Args:
            settings: OpenAI settings (API key, timeouts)
            client: Optional pre-built client (for testing)
        """
        self.settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            try:
                timeout = httpx.Timeout(
                    timeout=self.settings.request_timeout,
                    connect=self.settings.connect_timeout,
                )
                self._client = AsyncOpenAI(api_key=self.settings.api_key, timeout=timeout)
                logger.info(
                    "[OPENAI] Client initialized",
                    timeout_seconds=self.settings.request_timeout,
                )
            except Exception as e:
                logger.error("[OPENAI] Failed to initialize client", error=str(e))
                raise OpenAIAuthenticationError(
                    f"Failed to authenticate with OpenAI: {e}", e
                )
        return self._client

    @staticmethod
    def _build_input(messages: list[ChatMessage]) -> list[EasyInputMessageParam]:
        return [
            EasyInputMessageParam(type="message", role=m.role, content=m.content)
            for m in messages
        ]

    @staticmethod
    def _build_tools(tools: list[FunctionTool]) -> list[FunctionToolParam]:
        return [
            FunctionToolParam(
                type="function",
                name=tool.name,
                description=tool.description,
                parameters=tool.parameters,
                strict=False,
            )
            for tool in tools
        ]

    async def stream_response(
        self,
        messages: list[ChatMessage],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat response from the Responses API.

        Args:
            messages: Conversation history, oldest first
            instructions: Optional system prompt/instructions
            model: Model name (default gpt-4o-mini)
            temperature: Sampling temperature

        Yields:
            dict[str, Any]: Each Responses API stream event, dumped to a dict

        Raises:
            ModelStreamError: If the stream cannot be created or breaks mid-way
        """
        client = self._get_client()
        params: dict[str, Any] = {
            "model": model or DEFAULT_MODEL,
            "input": self._build_input(messages),
            "stream": True,
        }
        if instructions:
            params["instructions"] = instructions
        if temperature is not None:
            params["temperature"] = temperature

        logger.info(
            "[STREAM] Creating stream with OpenAI Responses API",
            model=params["model"],
            message_count=len(messages),
        )
        try:
            stream = await client.responses.create(**params)
            async for event in stream:
                yield event.model_dump(mode="json")
        except Exception as e:
            logger.error("[STREAM] Streaming chat failed", error=str(e))
            raise ModelStreamError(f"Model stream failed: {e}", e) from e

        logger.info("[STREAM] Chat stream completed")

    async def generate_function_call(
        self,
        messages: list[ChatMessage],
        tools: list[FunctionTool],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        force_tool: str | None = None,
    ) -> FunctionCall | None:
        """Run a single non-streamed request offering function tools.

        Args:
            messages: Conversation to analyze
            tools: Functions the model may call
            instructions: Optional system prompt/instructions
            model: Model name (default gpt-4o-mini)
            temperature: Sampling temperature
            force_tool: Name of a tool the model must call

        Returns:
            FunctionCall | None: The first function call in the output, if any

        Raises:
            OpenAIContentGenerationError: If the request fails or arguments are not JSON
        """
        try:
            client = self._get_client()
            params: dict[str, Any] = {
                "model": model or DEFAULT_MODEL,
                "input": self._build_input(messages),
                "tools": self._build_tools(tools),
                "tool_choice": (
                    {"type": "function", "name": force_tool} if force_tool else "auto"
                ),
            }
            if instructions:
                params["instructions"] = instructions
            if temperature is not None:
                params["temperature"] = temperature

            logger.info(
                "[OPENAI] Generating function call",
                model=params["model"],
                tools=[tool.name for tool in tools],
            )
            response: Response = await client.responses.create(**params)

            # Only the first call is honoured
            for item in response.output:
                if item.type == "function_call":
                    return FunctionCall(
                        name=item.name, arguments=json.loads(item.arguments or "{}")
                    )
            return None

        except Exception as e:
            logger.error("[OPENAI] Function call generation failed", error=str(e))
            raise OpenAIContentGenerationError(
                f"Failed to generate function call: {e}",
                e,
                tool_names=[tool.name for tool in tools],
            ) from e
