from __future__ import annotations

import json
import logging
from typing import Any

from openai import OpenAI

from .errors import AdapterUnavailable

logger = logging.getLogger("support_flow.openai")


class OpenAIClient:
    def __init__(self, api_key: str, chat_model: str, timeout_seconds: float = 10.0):
        self.api_key = api_key
        # No retries: a slow provider must not stall a conversation turn.
        self.client = OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0) if api_key else None
        self.chat_model = chat_model
        self.timeout_seconds = timeout_seconds

    @property
    def available(self) -> bool:
        return bool(self.api_key) and self.client is not None

    def chat_json(self, system_prompt: str, user_prompt: str, temperature: float = 0.2) -> dict[str, Any]:
        content = self._chat_raw(system_prompt, user_prompt, temperature)
        parsed = _parse_json(content)
        if not parsed:
            raise AdapterUnavailable("Chat provider returned unparsable JSON")
        return parsed

    def _chat_raw(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        if not self.available:
            raise AdapterUnavailable("Chat provider unavailable")
        try:
            response = self.client.chat.completions.create(
                model=self.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            logger.warning("OpenAI chat failed: %s", exc)
            raise AdapterUnavailable("Chat provider unavailable") from exc
        return response.choices[0].message.content or ""


def _parse_json(content: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(content)
        return parsed if isinstance(parsed, dict) else None
    except ValueError:
        pass

    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(content[start : end + 1])
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def _safe_float(value: Any) -> float | None:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
