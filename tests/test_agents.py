"""Tests for agent memory, commands and state snapshots."""

import asyncio

import pytest

from agentdesk.agents import (
    AgentCommand, AgentKind, AgentState, DefaultAgent, SpreadsheetAgent,
)
from agentdesk.agents.base import APOLOGY
from agentdesk.agents.models import MAX_MEMORY_ITEMS
from agentdesk.errors import ProviderError

from conftest import ScriptedChatModel


def test_memory_is_capped_fifo():
    """Oldest items are evicted first once the cap is exceeded."""
    agent = DefaultAgent()
    for i in range(MAX_MEMORY_ITEMS + 20):
        agent.add_to_memory("user", f"msg {i}")

    assert len(agent.memory) == MAX_MEMORY_ITEMS
    assert agent.memory[0].content == "msg 20"
    assert agent.memory[-1].content == f"msg {MAX_MEMORY_ITEMS + 19}"


def test_process_records_both_turns():
    agent = DefaultAgent()
    reply = asyncio.run(agent.process("hello"))

    assert "hello" in reply
    assert [m.role for m in agent.memory] == ["user", "assistant"]
    assert agent.memory[1].content == reply
    assert agent.active is True


def test_process_auto_starts_inactive_agent():
    agent = SpreadsheetAgent("airtable-1")
    assert agent.active is False

    asyncio.run(agent.process("list my bases"))
    assert agent.active is True


def test_default_agent_uses_chat_model_with_recent_memory():
    model = ScriptedChatModel("model reply")
    agent = DefaultAgent(chat_model=model)
    for i in range(15):
        agent.add_to_memory("user", f"old {i}")

    reply = asyncio.run(agent.process("new question"))

    assert reply == "model reply"
    sent = model.calls[0]["messages"]
    assert sent[0]["role"] == "system"
    assert len(sent) == 11
    assert sent[-1] == {"role": "user", "content": "new question"}


def test_default_agent_apologizes_on_provider_error():
    agent = DefaultAgent(chat_model=ScriptedChatModel(ProviderError("boom")))
    reply = asyncio.run(agent.process("hi"))

    assert reply == APOLOGY
    assert agent.memory[-1].content == APOLOGY


def test_unexpected_failure_becomes_apology():
    agent = DefaultAgent(chat_model=ScriptedChatModel(RuntimeError("kaput")))
    assert asyncio.run(agent.process("hi")) == APOLOGY


def test_clear_memory_command():
    agent = DefaultAgent()
    asyncio.run(agent.process("one"))

    result = asyncio.run(agent.execute_command("clear_memory"))
    assert result.success is True
    assert agent.memory == []


def test_get_status_command():
    agent = SpreadsheetAgent("airtable-1", credentials={"apiKey": "key"})
    asyncio.run(agent.process("one"))

    result = asyncio.run(agent.execute_command({"name": "get_status"}))
    assert result.success is True
    assert result.data["active"] is True
    assert result.data["memorySize"] == 2
    assert result.data["hasCredentials"] is True
    assert "lastActivity" in result.data


def test_unknown_command_does_not_raise():
    agent = DefaultAgent()
    result = asyncio.run(agent.execute_command("launch_rockets"))

    assert result.success is False
    assert result.message == "Unknown command: launch_rockets"


def test_malformed_command_does_not_raise():
    agent = DefaultAgent()
    result = asyncio.run(agent.execute_command(42))

    assert result.success is False


def test_command_parsing():
    """Payload can be nested or given as sibling keys."""
    cmd = AgentCommand.parse({"name": "set_auth_code", "code": "abc"})
    assert cmd.name == "set_auth_code"
    assert cmd.payload == {"code": "abc"}

    cmd = AgentCommand.parse({"command": "set_tokens_json", "payload": {"tokens": "{}"}})
    assert cmd.name == "set_tokens_json"
    assert cmd.payload == {"tokens": "{}"}

    with pytest.raises(TypeError):
        AgentCommand.parse(["clear_memory"])


def test_state_round_trip():
    agent = SpreadsheetAgent("airtable-7", name="Bases")
    asyncio.run(agent.process("hello"))

    state = agent.get_state()
    restored = SpreadsheetAgent("airtable-7")
    restored.load_state(AgentState.model_validate_json(state.to_json()))

    assert restored.get_state() == state


def test_load_state_caps_memory():
    agent = DefaultAgent()
    state = AgentState(
        id="default",
        type=AgentKind.DEFAULT,
        name="Default Assistant",
        memory=[{"role": "user", "content": str(i)} for i in range(MAX_MEMORY_ITEMS + 5)],
    )
    agent.load_state(state)

    assert len(agent.memory) == MAX_MEMORY_ITEMS
    assert agent.memory[0].content == "5"


def test_state_json_uses_wire_names():
    state = DefaultAgent().get_state()
    text = state.to_json()

    assert '"lastActivity"' in text
    assert "credentialInfo" not in text


def test_failed_auto_start_becomes_apology(monkeypatch):
    async def broken_start(self):
        raise ValueError("bad state")

    monkeypatch.setattr(SpreadsheetAgent, "start", broken_start)
    agent = SpreadsheetAgent("airtable-1")

    assert asyncio.run(agent.process("list my bases")) == APOLOGY
    assert [m.role for m in agent.memory] == ["user", "assistant"]


def test_failed_auto_start_fails_command(monkeypatch):
    async def broken_start(self):
        raise ValueError("bad state")

    monkeypatch.setattr(SpreadsheetAgent, "start", broken_start)
    result = asyncio.run(SpreadsheetAgent("airtable-1").execute_command("get_status"))

    assert result.success is False
    assert "bad state" in result.message
