import asyncio
import json
import logging
import re
from typing import Any, Dict

import openai

from learnflow.core.config import settings
from learnflow.core.errors import CollaboratorError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_json_reply(content: str) -> Dict[str, Any]:
    """
    Strips markdown code fences from a model reply and parses the JSON object inside.
    Raises CollaboratorError for anything that is not a JSON object.
    """
    if not content or not content.strip():
        raise CollaboratorError("AI returned an empty response")

    cleaned = _CODE_FENCE.sub("", content).strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError as e:
        raise CollaboratorError(f"AI response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise CollaboratorError("AI response is not a JSON object")
    return parsed


class CoachService:
    """Thin wrapper over an OpenAI-compatible chat endpoint (OpenRouter by default)."""

    def __init__(self):
        if settings.OPENAI_API_KEY:
            self.async_client = openai.AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=settings.AI_TIMEOUT_SECONDS,
                max_retries=0,
            )
            self.simulated = False
        else:
            self.async_client = None
            self.simulated = True

    async def complete_json(self, system_prompt: str, message: str) -> Dict[str, Any]:
        if self.simulated:
            raise CollaboratorError("AI is not configured (no OPENAI_API_KEY)")
        content = await self._llm_response(system_prompt, message)
        return parse_json_reply(content)

    async def _create(self, model: str, messages: list) -> str:
        response = await asyncio.wait_for(
            self.async_client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=settings.AI_TEMPERATURE,
                max_tokens=settings.AI_MAX_TOKENS,
            ),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
        if not response.choices:
            raise CollaboratorError("AI returned no choices")
        return response.choices[0].message.content or ""

    async def _llm_response(self, system_prompt: str, message: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": message},
        ]

        try:
            return await self._create(settings.OPENAI_MODEL, messages)
        except (openai.NotFoundError, openai.BadRequestError) as e:
            logger.warning(
                f"Primary model {settings.OPENAI_MODEL} failed ({e}). Switching to fallback: {settings.OPENAI_FALLBACK_MODEL}."
            )
            try:
                return await self._create(settings.OPENAI_FALLBACK_MODEL, messages)
            except Exception as e_fallback:
                raise CollaboratorError(f"Fallback model also failed: {e_fallback}") from e_fallback
        except CollaboratorError:
            raise
        except Exception as e:
            raise CollaboratorError(f"AI request failed: {e!r}") from e


# Global Instance
coach_service = CoachService()
