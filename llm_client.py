"""
llm_client.py — Thin async wrapper around the Anthropic Messages API.

One ClaudeClient is built at startup and handed to the engine as a
``model_caller`` (its bound ``complete`` method). It makes exactly one request
per call: SDK-level retries are disabled.
"""

import logging

from anthropic import AsyncAnthropic

from errors import SuggestionError

logger = logging.getLogger("seo-engine")

JSON_ONLY_INSTRUCTION = (
    "You ALWAYS respond with a single valid JSON object only — "
    "no markdown, no code fences, no explanation, no preamble."
)


class ClaudeClient:
    def __init__(self, client: AsyncAnthropic, model: str):
        self._client = client
        self.model = model

    @classmethod
    def from_api_key(cls, api_key: str, model: str) -> "ClaudeClient":
        # api_key=None lets the SDK fall back to ANTHROPIC_API_KEY
        return cls(AsyncAnthropic(api_key=api_key or None, max_retries=0), model)

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int = 1000,
        json_mode: bool = True,
    ) -> str:
        """
        Send one user prompt and return the concatenated text of the reply.
        The Messages API has no JSON response format, so json_mode appends a
        JSON-only instruction to the system prompt.
        Returns "" when the reply has no text blocks.
        """
        if json_mode:
            system = f"{system}\n{JSON_ONLY_INSTRUCTION}"
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[
                    {"role": "user", "content": prompt},
                ],
            )
        except Exception as e:
            # API errors, and the TypeError the SDK raises when no credential resolves
            logger.error(f"Claude call failed: {type(e).__name__}: {e}")
            raise SuggestionError() from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def close(self) -> None:
        await self._client.close()
