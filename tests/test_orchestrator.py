from __future__ import annotations

import asyncio

import pytest

from conftest import FakeModel
from copilot_server.composer import compose
from copilot_server.constants import EMPTY_REPLY
from copilot_server.errors import ModelInvocationError
from copilot_server.orchestrator import (
    ChatOrchestrator,
    Conversation,
    ConversationState,
    SystemPolicy,
)
from copilot_server.store import KnowledgeStore
from copilot_server.types import KnowledgeItem, KnowledgeKind, Role


async def _until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.005)


def _orchestrator(store: KnowledgeStore, model) -> ChatOrchestrator:
    return ChatOrchestrator(model, store, SystemPolicy("Be concise."), model_name="test-model", temperature=0.4)


@pytest.mark.asyncio
async def test_submit_appends_user_then_model(store, fake_model):
    orch = _orchestrator(store, fake_model)

    reply = await orch.submit("Hello")

    conv = orch.conversation()
    assert [m.role for m in conv.messages] == [Role.USER, Role.MODEL]
    assert conv.messages[0].text == "Hello"
    assert reply is conv.messages[1]
    assert reply.text == "ok"
    assert conv.state is ConversationState.IDLE


@pytest.mark.asyncio
async def test_request_carries_knowledge_policy_and_pre_call_history(store, fake_model):
    doc = KnowledgeItem(id="d1", title="ALE", content="Build Place runs on Azure.", kind=KnowledgeKind.NOTE)
    await store.put(doc)
    orch = _orchestrator(store, fake_model)

    await orch.submit("first")
    await orch.submit("second")

    first, second = fake_model.requests
    assert first.history == []
    assert first.message == "first"
    assert [(t.role, t.text) for t in second.history] == [(Role.USER, "first"), (Role.MODEL, "ok")]
    assert second.message == "second"
    assert second.system_instruction == compose([doc], "Be concise.")
    assert second.model == "test-model"
    assert second.temperature == 0.4


@pytest.mark.asyncio
async def test_policy_is_read_at_request_time(store, fake_model):
    orch = _orchestrator(store, fake_model)
    orch.policy.text = "Answer in French."

    await orch.submit("Bonjour")

    assert fake_model.requests[0].system_instruction.startswith("Answer in French.\n")


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_input_is_a_noop(store, fake_model, text):
    orch = _orchestrator(store, fake_model)

    assert await orch.submit(text) is None
    assert orch.conversation().messages == ()
    assert fake_model.requests == []


@pytest.mark.asyncio
async def test_second_submit_while_sending_is_a_noop(store):
    gate = asyncio.Event()

    class SlowModel(FakeModel):
        async def send(self, request):
            self.requests.append(request)
            await gate.wait()
            return "done"

    model = SlowModel()
    orch = _orchestrator(store, model)

    first = asyncio.create_task(orch.submit("one"))
    await _until(lambda: model.requests)
    assert orch.conversation().busy

    assert await orch.submit("two") is None
    assert len(model.requests) == 1

    gate.set()
    reply = await first
    assert reply.text == "done"
    assert [m.text for m in orch.conversation().messages] == ["one", "done"]
    assert not orch.conversation().busy


@pytest.mark.asyncio
async def test_conversations_are_independent(store):
    gate = asyncio.Event()

    class SlowModel(FakeModel):
        async def send(self, request):
            self.requests.append(request)
            await gate.wait()
            return "done"

    model = SlowModel()
    orch = _orchestrator(store, model)

    a = asyncio.create_task(orch.submit("hi", "a"))
    b = asyncio.create_task(orch.submit("hi", "b"))
    await _until(lambda: len(model.requests) == 2)
    gate.set()
    await asyncio.gather(a, b)


@pytest.mark.asyncio
async def test_auth_failure_becomes_one_configuration_message(store):
    model = FakeModel(error=ModelInvocationError("API key not valid", auth_failure=True))
    orch = _orchestrator(store, model)

    reply = await orch.submit("Hello")

    conv = orch.conversation()
    assert [m.role for m in conv.messages] == [Role.USER, Role.MODEL]
    assert reply.role is Role.MODEL
    assert "Configuration error" in reply.text
    assert "GEMINI_API_KEY" in reply.text
    assert conv.state is ConversationState.IDLE


@pytest.mark.asyncio
async def test_other_failure_uses_generic_notice(store):
    model = FakeModel(error=ModelInvocationError("quota exceeded"))
    orch = _orchestrator(store, model)

    reply = await orch.submit("Hello")

    assert reply.text.startswith("**Error:** quota exceeded")
    assert not orch.conversation().busy


@pytest.mark.asyncio
async def test_empty_model_text_gets_placeholder(store):
    orch = _orchestrator(store, FakeModel(reply=""))
    reply = await orch.submit("Hello")
    assert reply.text == EMPTY_REPLY


def test_conversation_two_phase_transitions():
    conv = Conversation("c1")
    turn = conv.begin("question")
    assert turn is not None
    assert conv.pending is turn
    assert conv.state is ConversationState.SENDING
    assert turn.history == ()

    conv.confirm(turn, "answer")
    conv.settle()
    assert conv.pending is None
    assert [m.text for m in conv.messages] == ["question", "answer"]

    later = conv.begin("follow-up")
    assert [m.text for m in later.history] == ["question", "answer"]


def test_conversation_rejects_answer_for_stale_turn():
    conv = Conversation()
    turn = conv.begin("q")
    conv.confirm(turn, "a")
    conv.settle()
    with pytest.raises(RuntimeError):
        conv.confirm(turn, "again")


@pytest.mark.asyncio
async def test_get_conversation_never_creates(store, fake_model):
    orch = _orchestrator(store, fake_model)
    assert orch.get_conversation("default") is None

    await orch.submit("Hello")
    assert orch.get_conversation("default") is orch.conversation("default")
    assert orch.get_conversation("other") is None
