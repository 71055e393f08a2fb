"""Thread-safe in-memory conversation store with a bounded LRU footprint.

Design decisions
────────────────
• **OrderedDict** keyed by conversation id for O(1) LRU promotion and
  eviction once ``max_conversations`` is reached.
• Histories are stored as tuples, and ``get`` hands out a fresh list, so a
  caller mutating its working copy never touches the stored transcript.
• **Append-only**: ``put`` rejects a history that does not start with the
  stored turns (compared by turn id).
• **Per-conversation locks**: the orchestrator holds ``lock(id)`` for the
  whole request, so two requests for the same conversation never race on
  the read-modify-write of its history.  A lock is reference-counted and
  dropped once nobody holds or waits for it.
• Purely ephemeral — everything is lost on process restart.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from cea_agent.models import ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONVERSATIONS = 10_000


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class ConversationStore:
    """Maps conversation ids to their (append-only) message history."""

    def __init__(self, max_conversations: int = DEFAULT_MAX_CONVERSATIONS) -> None:
        self._max_conversations = max_conversations
        self._store: OrderedDict[str, tuple[ConversationTurn, ...]] = OrderedDict()
        self._conversation_locks: dict[str, _LockEntry] = {}
        self._lock = threading.Lock()

    # ── Core operations ──────────────────────────────────────────────

    def get(self, conversation_id: str) -> list[ConversationTurn]:
        """Return the history for *conversation_id*; empty if unknown."""
        with self._lock:
            history = self._store.get(conversation_id)
            if history is None:
                return []
            self._store.move_to_end(conversation_id)
            return list(history)

    def put(self, conversation_id: str, history: Sequence[ConversationTurn]) -> None:
        """Store *history*, which must extend what is already stored."""
        with self._lock:
            previous = self._store.get(conversation_id, ())
            if [t.id for t in history[: len(previous)]] != [t.id for t in previous]:
                raise ValueError(
                    f"History for conversation {conversation_id} must extend the stored history"
                )

            self._store[conversation_id] = tuple(history)
            self._store.move_to_end(conversation_id)

            while len(self._store) > self._max_conversations:
                evicted_id, _ = self._store.popitem(last=False)
                logger.debug("ConversationStore: evicted %s", evicted_id)

    @contextmanager
    def lock(self, conversation_id: str) -> Iterator[None]:
        """Hold the lock serialising requests for *conversation_id*.

        The lock only exists while a request holds or waits for it.
        """
        with self._lock:
            entry = self._conversation_locks.get(conversation_id)
            if entry is None:
                entry = self._conversation_locks[conversation_id] = _LockEntry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._conversation_locks[conversation_id]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    # ── Introspection ────────────────────────────────────────────────

    @property
    def conversation_count(self) -> int:
        return len(self._store)

    def has(self, conversation_id: str) -> bool:
        """Check for a conversation *without* promoting it."""
        return conversation_id in self._store
