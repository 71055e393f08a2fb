"""Drives an agent run to completion, auto-approving tool calls.

Agents whose tools require approval stop with an :class:`Interruption` every
time they want to call a tool.  This deployment trusts its own tool backend,
so the loop approves every pending tool-call request and re-runs the agent,
up to ``max_rounds`` times.

Ending while still interrupted is reported through ``ApprovalRun.exhausted``
instead of being indistinguishable from a normal finish.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from cea_agent.errors import AgentTimeoutError
from cea_agent.models import ConversationTurn, Role
from cea_agent.runner import Agent, AgentResult, AgentRunner, FinalOutput, Interruption
from cea_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5
DEFAULT_TIMEOUT_SECONDS = 120.0


@dataclass
class ApprovalRun:
    result: AgentResult
    # Everything produced across all rounds, in append order
    new_items: list[ConversationTurn] = field(default_factory=list)
    rounds: int = 0
    invocations: int = 1
    exhausted: bool = False


def extract_output_text(result: AgentResult) -> str | None:
    """The agent's final text, falling back to its last assistant message.

    Returns ``None`` when neither yields any text.
    """
    if isinstance(result, FinalOutput) and result.text:
        return result.text
    if not result.new_items:
        return None
    last = result.new_items[-1]
    if last.role is not Role.ASSISTANT:
        return None
    return last.text or None


class ApprovalLoop:
    """Runs an agent, resolving tool-approval interruptions."""

    def __init__(
        self,
        runner: AgentRunner,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._runner = runner
        self._max_rounds = max_rounds
        self._timeout_seconds = timeout_seconds

    def run(self, agent: Agent, history: Sequence[ConversationTurn]) -> ApprovalRun:
        deadline = time.monotonic() + self._timeout_seconds
        working = list(history)
        result = self._runner.run(agent, list(working))
        invocations = 1
        rounds = 0

        while isinstance(result, Interruption) and rounds < self._max_rounds:
            rounds += 1
            approved = [item.approve() for item in result.pending if item.is_tool_call_request]
            if not approved:
                logger.warning("%s interrupted with nothing approvable", agent.name)
                break

            approved_ids = {item.id for item in approved}
            working.extend(item for item in result.new_items if item.id not in approved_ids)
            working.extend(approved)
            logger.debug(
                "%s: approved %d tool call(s) (round %d/%d)",
                agent.name, len(approved), rounds, self._max_rounds,
            )

            if time.monotonic() > deadline:
                raise AgentTimeoutError(
                    f"{agent.name} did not finish within {self._timeout_seconds:.0f}s"
                )
            result = self._runner.run(agent, list(working))
            invocations += 1

        exhausted = isinstance(result, Interruption)
        if exhausted:
            logger.warning(
                "%s still interrupted after %d approval round(s); giving up",
                agent.name, rounds,
            )
            metrics.increment("Agents/ApprovalExhausted", Agent=agent.name)

        return ApprovalRun(
            result=result,
            new_items=working[len(history):] + list(result.new_items),
            rounds=rounds,
            invocations=invocations,
            exhausted=exhausted,
        )
