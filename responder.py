"""Language-model response generation via DashScope chat models."""

from __future__ import annotations

import logging
import os

from errors import AUTH_FAILED, ResponseError
from models import ResponseMode

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

CALM_PROMPT = (
    "You are Aura, a personal safety AI. You are on a simulated phone call with me. "
    "Your tone is calm, clear, and reassuring. Respond as if you are a friend or family "
    "member on the phone, asking clarifying questions like 'What's going on?' or "
    "'Describe them to me'. Keep responses under 30 words."
)

ASSERTIVE_PROMPT = (
    "You are Aura, a personal safety AI. The situation has escalated. Change your tone to "
    "be loud, assertive, and official. Announce that this is a monitored safety call, that "
    "audio is being recorded, and that the user's location has been shared with "
    "authorities. Address the potential aggressor directly. Keep responses under 50 words "
    "and be direct."
)

EMPTY_REPLY = "I understand. Can you tell me more about what's happening?"

SYSTEM_PROMPTS = {
    ResponseMode.CALM: CALM_PROMPT,
    ResponseMode.ASSERTIVE: ASSERTIVE_PROMPT,
}


class DashscopeResponder:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-plus",
        max_tokens: int = 100,
        temperature: float = 0.7,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._request_timeout_s = request_timeout_s

    def respond(self, transcript: str, mode: ResponseMode) -> str:
        if dashscope is None:
            raise ResponseError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ResponseError("No API key configured", code=AUTH_FAILED)

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPTS[mode]},
                    {"role": "user", "content": transcript},
                ],
                result_format="message",
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise ResponseError(str(exc)) from exc

        status = getattr(response, "status_code", 200)
        if status != 200:
            raise ResponseError(str(getattr(response, "message", "") or f"status {status}"))
        reply = self._extract_reply(response)
        if not reply:
            logger.debug("empty %s reply from %s", mode.value, self._model)
        return reply or EMPTY_REPLY

    @staticmethod
    def _extract_reply(response: object) -> str:
        if not isinstance(response, dict):
            return ""
        output = response.get("output", {}) or {}
        choices = output.get("choices", []) or []
        if not choices:
            return str(output.get("text", "") or "").strip()
        message = choices[0].get("message", {}) or {}
        return str(message.get("content", "") or "").strip()
