"""Hosted chat model client (Gemini) with system-instruction + history support."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE
from .errors import ModelInvocationError
from .types import Message, Role

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


# -----------------------------
# Types
# -----------------------------

@dataclass(frozen=True)
class Turn:
    role: Role
    text: str


@dataclass
class ChatRequest:
    """Everything one model call needs."""
    model: str
    system_instruction: str
    message: str
    temperature: float = DEFAULT_TEMPERATURE
    history: List[Turn] = field(default_factory=list)


class ChatModel(Protocol):
    """Anything that can answer a :class:`ChatRequest` with reply text."""

    async def send(self, request: ChatRequest) -> str: ...


def history_turns(messages: Sequence[Message]) -> List[Turn]:
    return [Turn(role=m.role, text=m.text) for m in messages]


def _is_auth_error(exc: Exception) -> bool:
    code = getattr(exc, "code", None)
    if code in (401, 403):
        return True
    text = str(exc).lower()
    return "api key" in text or "api_key" in text or "permission denied" in text


# -----------------------------
# Gemini wrapper
# -----------------------------

class GeminiChatModel:
    """Thin wrapper around :mod:`google.genai` chats.

    The client is built lazily on the first call so the server can start
    (and serve knowledge endpoints) before credentials are configured.
    """

    def __init__(self, api_key: Optional[str] = None, *, client: Any = None) -> None:
        self._api_key = api_key
        self._client = client

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ModelInvocationError(
                "No API key configured for the model service.", auth_failure=True
            )
        from google import genai

        self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def send(self, request: ChatRequest) -> str:
        client = self._ensure_client()
        from google.genai import types

        history = [
            types.Content(role=t.role.value, parts=[types.Part(text=t.text)])
            for t in request.history
        ]
        try:
            chat = client.aio.chats.create(
                model=request.model,
                config=types.GenerateContentConfig(
                    system_instruction=request.system_instruction,
                    temperature=request.temperature,
                ),
                history=history,
            )
            result = await chat.send_message(request.message)
        except Exception as e:
            logger.exception("Gemini API error (model=%s)", request.model)
            raise ModelInvocationError(
                str(e) or "Failed to communicate with the AI agent.",
                auth_failure=_is_auth_error(e),
            ) from e
        return result.text or ""


# -----------------------------
# Convenience factory
# -----------------------------

def resolve_api_key(cfg: Dict[str, Any]) -> Optional[str]:
    model_cfg = (cfg or {}).get("model", {}) or {}
    key = model_cfg.get("api_key")
    if key:
        return str(key)
    for var in API_KEY_ENV_VARS:
        if os.environ.get(var):
            return os.environ[var]
    return None


def create_from_config(cfg: Dict[str, Any]) -> GeminiChatModel:
    """Create GeminiChatModel from a config dict (e.g., loaded YAML)."""
    key = resolve_api_key(cfg)
    if not key:
        logger.warning(
            "No model API key found (set %s or model.api_key); chat will fail until configured",
            " / ".join(API_KEY_ENV_VARS),
        )
    return GeminiChatModel(api_key=key)


def model_settings(cfg: Dict[str, Any]) -> Dict[str, Any]:
    model_cfg = (cfg or {}).get("model", {}) or {}
    return {
        "name": str(model_cfg.get("name") or DEFAULT_MODEL),
        "temperature": float(model_cfg.get("temperature", DEFAULT_TEMPERATURE)),
    }
