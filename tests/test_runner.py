"""Tests for the agent runner and conversation/message translation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import tool

from cea_agent.models import (
    ClassificationLabel,
    ClassificationResult,
    ConversationTurn,
    Role,
    ToolCallPart,
    ToolResultPart,
)
from cea_agent.runner import (
    Agent,
    AgentRunner,
    Failure,
    FinalOutput,
    Interruption,
    to_langchain_messages,
    turn_from_ai_message,
)


@tool
def get_deuda(contract_number: str) -> str:
    """Consulta el adeudo de un contrato."""
    return f"Contrato {contract_number}: adeudo $350.00"


@tool
def broken_tool(contract_number: str) -> str:
    """Siempre falla."""
    raise RuntimeError("backend down")


def _mock_llm(*responses):
    llm = MagicMock()
    llm.bind_tools.return_value = llm
    llm.invoke.side_effect = list(responses)
    return llm


def _call(name="get_deuda", call_id="call_1", **args):
    return {"name": name, "args": args or {"contract_number": "123456"}, "id": call_id}


# ── Message translation ──────────────────────────────────────────────


class TestToLangchainMessages:
    def test_user_and_assistant_text(self):
        messages = to_langchain_messages([
            ConversationTurn.user("hola"),
            ConversationTurn.assistant("¡Hola! ¿En qué te ayudo?"),
        ])
        assert isinstance(messages[0], HumanMessage)
        assert messages[0].content == "hola"
        assert isinstance(messages[1], AIMessage)
        assert messages[1].content == "¡Hola! ¿En qué te ayudo?"

    def test_tool_result_follows_its_call(self):
        call = ToolCallPart(call_id="c1", name="get_deuda", arguments={"contract_number": "1"})
        history = [
            ConversationTurn(role=Role.ASSISTANT, content=[call]),
            ConversationTurn(role=Role.TOOL_APPROVAL_REQUEST, content=[call], approved=True),
            ConversationTurn(
                role=Role.TOOL_RESULT,
                content=[ToolResultPart(call_id="c1", name="get_deuda", output="$350")],
            ),
        ]
        messages = to_langchain_messages(history)

        assert len(messages) == 2  # approval requests never reach the model
        assert messages[0].tool_calls[0]["id"] == "c1"
        assert isinstance(messages[1], ToolMessage)
        assert messages[1].tool_call_id == "c1"
        assert messages[1].content == "$350"

    def test_unresolved_call_gets_error_result(self):
        call = ToolCallPart(call_id="c9", name="get_deuda")
        messages = to_langchain_messages([ConversationTurn(role=Role.ASSISTANT, content=[call])])
        assert isinstance(messages[1], ToolMessage)
        assert messages[1].status == "error"

    def test_turn_from_ai_message(self):
        turn = turn_from_ai_message(AIMessage(content="Consultando...", tool_calls=[_call()]))
        assert turn.role is Role.ASSISTANT
        assert turn.text == "Consultando..."
        assert turn.tool_calls[0].arguments == {"contract_number": "123456"}


# ── Plain and tool-using agents ──────────────────────────────────────


class TestAgentRunner:
    def test_text_answer_is_final(self):
        llm = _mock_llm(AIMessage(content="Nuestro horario es de 8 a 16 h."))
        agent = Agent(name="Information agent", instructions="...", llm=llm)

        result = AgentRunner().run(agent, [ConversationTurn.user("¿horario?")])

        assert isinstance(result, FinalOutput)
        assert result.text == "Nuestro horario es de 8 a 16 h."
        assert [t.role for t in result.new_items] == [Role.ASSISTANT]

    def test_system_prompt_comes_first(self):
        llm = _mock_llm(AIMessage(content="ok"))
        agent = Agent(name="Info", instructions="Eres María", llm=llm)

        AgentRunner().run(agent, [ConversationTurn.user("hola")])

        messages = llm.invoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == "Eres María"

    def test_tools_run_until_text_answer(self):
        llm = _mock_llm(
            AIMessage(content="", tool_calls=[_call()]),
            AIMessage(content="Tu adeudo es de $350.00"),
        )
        agent = Agent(name="Pagos Agent", instructions="...", llm=llm, tools=(get_deuda,))

        result = AgentRunner().run(agent, [ConversationTurn.user("¿cuánto debo?")])

        assert isinstance(result, FinalOutput)
        assert result.text == "Tu adeudo es de $350.00"
        assert [t.role for t in result.new_items] == [Role.ASSISTANT, Role.TOOL_RESULT, Role.ASSISTANT]
        assert "adeudo $350.00" in result.new_items[1].tool_results[0].output
        llm.bind_tools.assert_called_once()

    def test_tool_errors_are_reported_to_the_model(self):
        llm = _mock_llm(
            AIMessage(content="", tool_calls=[_call(name="broken_tool")]),
            AIMessage(content="No pude consultar tu información."),
        )
        agent = Agent(name="Pagos Agent", instructions="...", llm=llm, tools=(broken_tool,))

        result = AgentRunner().run(agent, [ConversationTurn.user("¿cuánto debo?")])

        tool_result = result.new_items[1].tool_results[0]
        assert tool_result.is_error is True
        assert "backend down" in tool_result.output

    def test_unknown_tool_is_an_error_result(self):
        llm = _mock_llm(
            AIMessage(content="", tool_calls=[_call(name="no_such_tool")]),
            AIMessage(content="listo"),
        )
        agent = Agent(name="Pagos Agent", instructions="...", llm=llm, tools=(get_deuda,))

        result = AgentRunner().run(agent, [])

        assert result.new_items[1].tool_results[0].is_error is True

    def test_too_many_model_turns_is_a_failure(self):
        llm = MagicMock()
        llm.bind_tools.return_value = llm
        llm.invoke.side_effect = lambda messages: AIMessage(
            content="", tool_calls=[_call(call_id=f"c{len(messages)}")],
        )
        agent = Agent(name="Pagos Agent", instructions="...", llm=llm, tools=(get_deuda,))

        result = AgentRunner(max_turns=3).run(agent, [])

        assert isinstance(result, Failure)
        assert llm.invoke.call_count == 3

    def test_model_errors_propagate(self):
        llm = MagicMock()
        llm.invoke.side_effect = TimeoutError("anthropic timeout")
        agent = Agent(name="Info", instructions="...", llm=llm)

        with pytest.raises(TimeoutError):
            AgentRunner().run(agent, [])


# ── Approval-gated agents ────────────────────────────────────────────


class TestApprovalGatedAgents:
    def test_tool_call_interrupts(self):
        llm = _mock_llm(AIMessage(content="", tool_calls=[_call(), _call(call_id="call_2")]))
        agent = Agent(
            name="Tickets Agent", instructions="...", llm=llm,
            tools=(get_deuda,), requires_approval=True,
        )

        result = AgentRunner().run(agent, [ConversationTurn.user("mis tickets")])

        assert isinstance(result, Interruption)
        assert len(result.pending) == 2
        assert all(t.role is Role.TOOL_APPROVAL_REQUEST for t in result.pending)
        assert [t.role for t in result.new_items] == [
            Role.ASSISTANT, Role.TOOL_APPROVAL_REQUEST, Role.TOOL_APPROVAL_REQUEST,
        ]

    def test_approved_calls_run_before_the_model(self):
        llm = _mock_llm(AIMessage(content="Tu adeudo es de $350.00"))
        agent = Agent(
            name="Tickets Agent", instructions="...", llm=llm,
            tools=(get_deuda,), requires_approval=True,
        )
        call = ToolCallPart(call_id="c1", name="get_deuda", arguments={"contract_number": "42"})
        request = ConversationTurn(role=Role.TOOL_APPROVAL_REQUEST, content=[call])
        history = [
            ConversationTurn.user("¿cuánto debo?"),
            ConversationTurn(role=Role.ASSISTANT, content=[call]),
            request.approve(),
        ]

        result = AgentRunner().run(agent, history)

        assert isinstance(result, FinalOutput)
        assert result.new_items[0].role is Role.TOOL_RESULT
        assert "Contrato 42" in result.new_items[0].tool_results[0].output
        # The model saw the call paired with its result
        messages = llm.invoke.call_args[0][0]
        assert isinstance(messages[-1], ToolMessage)
        assert messages[-1].tool_call_id == "c1"

    def test_unapproved_requests_are_not_executed(self):
        llm = _mock_llm(AIMessage(content="ok"))
        agent = Agent(
            name="Tickets Agent", instructions="...", llm=llm,
            tools=(get_deuda,), requires_approval=True,
        )
        call = ToolCallPart(call_id="c1", name="get_deuda", arguments={"contract_number": "42"})
        history = [
            ConversationTurn(role=Role.ASSISTANT, content=[call]),
            ConversationTurn(role=Role.TOOL_APPROVAL_REQUEST, content=[call]),
        ]

        result = AgentRunner().run(agent, history)

        assert [t.role for t in result.new_items] == [Role.ASSISTANT]


# ── Structured output agents ─────────────────────────────────────────


class TestStructuredAgents:
    def test_parsed_result_is_returned(self):
        llm = MagicMock()
        llm.with_structured_output.return_value.invoke.return_value = ClassificationResult(
            classification=ClassificationLabel.FUGA,
        )
        agent = Agent(
            name="Classification agent", instructions="...", llm=llm,
            output_type=ClassificationResult,
        )

        result = AgentRunner().run(agent, [ConversationTurn.user("hay una fuga en mi calle")])

        assert isinstance(result, FinalOutput)
        assert result.parsed.classification is ClassificationLabel.FUGA
        assert '"fuga"' in result.text
        assert result.new_items[0].is_plain_assistant_message
        llm.with_structured_output.assert_called_once_with(ClassificationResult)

    def test_missing_structured_output_is_a_failure(self):
        llm = MagicMock()
        llm.with_structured_output.return_value.invoke.return_value = None
        agent = Agent(
            name="Classification agent", instructions="...", llm=llm,
            output_type=ClassificationResult,
        )

        assert isinstance(AgentRunner().run(agent, []), Failure)
