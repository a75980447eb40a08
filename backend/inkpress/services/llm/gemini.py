"""Google Gemini LLM provider."""

from typing import AsyncIterator

from google import genai
from google.genai import types

from inkpress.core.config import settings
from inkpress.services.llm.base import BaseLLMProvider, Message, SchemaT


def _to_contents(messages: list[Message]) -> tuple[str | None, list[dict]]:
    """Split out system turns and map roles to Gemini's user/model."""
    system = "\n\n".join(m.content for m in messages if m.role == "system") or None
    contents = [
        {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
        for m in messages
        if m.role != "system"
    ]
    return system, contents


class GeminiProvider(BaseLLMProvider):
    def __init__(self):
        self.client = genai.Client(api_key=settings.gemini_api_key)
        self.model = settings.gemini_model

    async def chat_stream(self, messages: list[Message]) -> AsyncIterator[str]:
        system, contents = _to_contents(messages)
        config = types.GenerateContentConfig(system_instruction=system) if system else None
        response = await self.client.aio.models.generate_content_stream(
            model=self.model,
            contents=contents,
            config=config,
        )
        async for chunk in response:
            if chunk.text:
                yield chunk.text

    async def generate_structured(self, prompt: str, schema: type[SchemaT]) -> SchemaT:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        if isinstance(response.parsed, schema):
            return response.parsed
        return schema.model_validate_json(response.text or "")
