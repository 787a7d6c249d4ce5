"""Chat orchestration: one conversation, one in-flight model call at a time."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .composer import compose
from .constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE, EMPTY_REPLY
from .errors import ModelInvocationError
from .llm import ChatModel, ChatRequest, history_turns
from .store import KnowledgeStore
from .types import Message, Role

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION = "default"


class ConversationState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


@dataclass
class SystemPolicy:
    """User-editable system instruction, read at request time."""
    text: str


@dataclass(frozen=True)
class PendingTurn:
    """A user message that has been recorded but not yet answered.

    ``history`` is the conversation as it stood before the user message,
    which is what the model receives alongside the live message.
    """
    message: Message
    history: Tuple[Message, ...]


def error_notice(exc: Exception) -> str:
    """Render a failed model call as a chat message."""
    if isinstance(exc, ModelInvocationError) and exc.auth_failure:
        return (
            f"**Configuration error:** the model service rejected the credentials ({exc}).\n\n"
            "Set the `GEMINI_API_KEY` environment variable or `model.api_key` "
            "in the config file, then try again."
        )
    reason = str(exc) or "Something went wrong."
    return (
        f"**Error:** {reason} \n\n"
        "Please check your API key environment variable or network connection."
    )


class Conversation:
    """Append-only message history with an IDLE -> SENDING -> IDLE cycle."""

    def __init__(self, conversation_id: str = DEFAULT_CONVERSATION) -> None:
        self.id = conversation_id
        self._messages: List[Message] = []
        self.state = ConversationState.IDLE
        self.pending: Optional[PendingTurn] = None

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def busy(self) -> bool:
        return self.state is ConversationState.SENDING

    def begin(self, text: str) -> Optional[PendingTurn]:
        """Record the user message and enter SENDING.

        Returns None (and changes nothing) for blank text or while another
        turn is in flight.
        """
        if not text or not text.strip() or self.busy:
            return None
        turn = PendingTurn(message=Message(role=Role.USER, text=text), history=self.messages)
        self._messages.append(turn.message)
        self.state = ConversationState.SENDING
        self.pending = turn
        return turn

    def confirm(self, turn: PendingTurn, reply: str) -> Message:
        return self._answer(turn, reply or EMPTY_REPLY)

    def fail(self, turn: PendingTurn, notice: str) -> Message:
        return self._answer(turn, notice)

    def settle(self) -> None:
        self.state = ConversationState.IDLE
        self.pending = None

    def _answer(self, turn: PendingTurn, text: str) -> Message:
        if self.pending is not turn:
            raise RuntimeError(f"turn {turn.message.id} is not pending in conversation {self.id}")
        msg = Message(role=Role.MODEL, text=text)
        self._messages.append(msg)
        return msg


class ChatOrchestrator:
    """Sequence user input -> context composition -> model call -> reply.

    The model client is injected; the orchestrator never builds one.
    """

    def __init__(
        self,
        model: ChatModel,
        store: KnowledgeStore,
        policy: SystemPolicy,
        *,
        model_name: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> None:
        self.model = model
        self.store = store
        self.policy = policy
        self.model_name = model_name
        self.temperature = temperature
        self._conversations: Dict[str, Conversation] = {}

    def conversation(self, conversation_id: str = DEFAULT_CONVERSATION) -> Conversation:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            conv = Conversation(conversation_id)
            self._conversations[conversation_id] = conv
        return conv

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return an existing conversation without creating one."""
        return self._conversations.get(conversation_id)

    async def submit(self, text: str, conversation_id: str = DEFAULT_CONVERSATION) -> Optional[Message]:
        """Send ``text`` and return the MODEL reply message.

        Returns None without side effects when ``text`` is blank or a call
        is already in flight for this conversation. Failures come back as
        a MODEL message carrying an error notice.
        """
        conv = self.conversation(conversation_id)
        turn = conv.begin(text)
        if turn is None:
            return None

        try:
            items = await self.store.list_all()
            request = ChatRequest(
                model=self.model_name,
                system_instruction=compose(items, self.policy.text),
                message=turn.message.text,
                temperature=self.temperature,
                history=history_turns(turn.history),
            )
            reply = await self.model.send(request)
            return conv.confirm(turn, reply)
        except Exception as e:
            logger.exception("Chat turn failed in conversation %s", conv.id)
            return conv.fail(turn, error_notice(e))
        finally:
            conv.settle()
