"""Input guardrails: a pluggable check run before classification.

A guardrail evaluates text and returns findings.  Any finding with
``tripwire_triggered`` stops the workflow and the caller receives the
structured failure payload.  Guardrails configured with ``block=False`` also
*mask*: their ``checked_text`` replaces the original text in the user turns
of the history and in the workflow input before the request continues.

Only :class:`NoopGuardrail` ships today; moderation or PII backends plug in
by subclassing :class:`Guardrail`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from cea_agent.models import ConversationTurn, Role

logger = logging.getLogger(__name__)

# Finding categories reported in the failure payload
JAILBREAK = "Jailbreak"
PII = "Contains PII"
MODERATION = "Moderation"
HALLUCINATION = "Hallucination Detection"
NSFW = "NSFW Text"
URL_FILTER = "URL Filter"
CUSTOM_PROMPT_CHECK = "Custom Prompt Check"
PROMPT_INJECTION = "Prompt Injection Detection"


@dataclass
class GuardrailFinding:
    guardrail_name: str
    tripwire_triggered: bool = False
    # Masked version of the evaluated text, when the guardrail produced one
    checked_text: str | None = None
    info: dict[str, Any] = field(default_factory=dict)


class Guardrail(ABC):
    """A named check over a piece of text."""

    def __init__(self, name: str, *, block: bool = True) -> None:
        self.name = name
        self.block = block

    @property
    def masks(self) -> bool:
        return not self.block

    @abstractmethod
    def evaluate(self, text: str) -> list[GuardrailFinding]:
        """Return the findings for *text* (empty when nothing fired)."""


class NoopGuardrail(Guardrail):
    """Placeholder that never fires."""

    def evaluate(self, text: str) -> list[GuardrailFinding]:
        return []


def safe_text(findings: Sequence[GuardrailFinding], fallback: str) -> str:
    for finding in findings:
        if finding.checked_text is not None:
            return finding.checked_text
    return fallback


def build_failure_payload(findings: Sequence[GuardrailFinding]) -> dict[str, Any]:
    """Summarise findings per category for the caller."""

    def _get(name: str) -> GuardrailFinding | None:
        return next((f for f in findings if f.guardrail_name == name), None)

    def _tripped(name: str) -> bool:
        finding = _get(name)
        return bool(finding and finding.tripwire_triggered)

    pii = _get(PII)
    pii_counts = [
        f"{entity}:{len(values)}"
        for entity, values in ((pii.info.get("detected_entities") or {}) if pii else {}).items()
        if isinstance(values, list)
    ]
    moderation = _get(MODERATION)
    flagged = list((moderation.info.get("flagged_categories") or []) if moderation else [])
    hallucination = _get(HALLUCINATION)
    hallucination_info = hallucination.info if hallucination else {}

    return {
        "pii": {"failed": bool(pii_counts) or _tripped(PII), "detected_counts": pii_counts},
        "moderation": {"failed": _tripped(MODERATION) or bool(flagged), "flagged_categories": flagged},
        "jailbreak": {"failed": _tripped(JAILBREAK)},
        "hallucination": {
            "failed": _tripped(HALLUCINATION),
            "reasoning": hallucination_info.get("reasoning"),
            "hallucination_type": hallucination_info.get("hallucination_type"),
            "hallucinated_statements": hallucination_info.get("hallucinated_statements"),
            "verified_statements": hallucination_info.get("verified_statements"),
        },
        "nsfw": {"failed": _tripped(NSFW)},
        "url_filter": {"failed": _tripped(URL_FILTER)},
        "custom_prompt_check": {"failed": _tripped(CUSTOM_PROMPT_CHECK)},
        "prompt_injection": {"failed": _tripped(PROMPT_INJECTION)},
    }


@dataclass
class GuardrailOutcome:
    findings: list[GuardrailFinding]
    input_text: str
    history: list[ConversationTurn]
    tripped: bool

    @property
    def failure_payload(self) -> dict[str, Any]:
        return build_failure_payload(self.findings)


class GuardrailSuite:
    """Runs every configured guardrail and applies mask/block semantics."""

    def __init__(self, guardrails: Sequence[Guardrail] = ()) -> None:
        self._guardrails = list(guardrails)

    @property
    def guardrails(self) -> list[Guardrail]:
        return list(self._guardrails)

    def evaluate(self, text: str) -> list[GuardrailFinding]:
        findings: list[GuardrailFinding] = []
        for guardrail in self._guardrails:
            findings.extend(guardrail.evaluate(text))
        return findings

    def apply(self, input_text: str, history: Sequence[ConversationTurn]) -> GuardrailOutcome:
        """Evaluate *input_text*, scrub with masking guardrails, detect trips."""
        findings = self.evaluate(input_text)
        history = list(history)

        for guardrail in self._guardrails:
            if not guardrail.masks:
                continue
            history = [self._scrub_turn(guardrail, turn) for turn in history]
            input_text = safe_text(guardrail.evaluate(input_text), input_text)

        # A tripwire stops the workflow whatever the guardrail's masking policy
        tripped = any(finding.tripwire_triggered for finding in findings)
        if tripped:
            logger.warning(
                "Guardrail tripwire: %s",
                ", ".join(f.guardrail_name for f in findings if f.tripwire_triggered),
            )
        return GuardrailOutcome(findings=findings, input_text=input_text, history=history, tripped=tripped)

    @staticmethod
    def _scrub_turn(guardrail: Guardrail, turn: ConversationTurn) -> ConversationTurn:
        if turn.role is not Role.USER or not turn.text:
            return turn
        masked = safe_text(guardrail.evaluate(turn.text), turn.text)
        return turn if masked == turn.text else turn.with_text(masked)
