"""Human-readable ticket folios: ``CEA-{CODE}-{YYMMDD}-{NNNN}``.

Counters are bucketed per (date, ticket type) and live in process memory
only, so uniqueness does not survive a restart.  The read-increment-write
sequence runs under a lock; concurrent requests never receive the same
folio.
"""

from __future__ import annotations

import logging
import threading

from cea_agent.models import TicketType
from cea_agent.services.clock import Clock

logger = logging.getLogger(__name__)

FOLIO_PREFIX = "CEA"

TICKET_TYPE_CODES: dict[TicketType, str] = {
    TicketType.FUGA: "FUG",
    TicketType.ACLARACIONES: "ACL",
    TicketType.PAGOS: "PAG",
    TicketType.LECTURAS: "LEC",
    TicketType.REVISION_RECIBO: "REV",
    TicketType.RECIBO_DIGITAL: "DIG",
    TicketType.URGENTE: "URG",
}


class FolioGenerator:
    """Allocates sequential folios per day and ticket type."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or Clock()
        # "YYMMDD-CODE" → last issued counter
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()

    def allocate(self, ticket_type: TicketType | str) -> str:
        """Return the next folio for *ticket_type*.

        Raises ``ValueError`` for a type outside :class:`TicketType`.
        """
        code = TICKET_TYPE_CODES[TicketType(ticket_type)]
        date = self._clock.now().strftime("%y%m%d")
        key = f"{date}-{code}"

        with self._lock:
            count = self._counters.get(key, 0) + 1
            self._counters[key] = count

        folio = f"{FOLIO_PREFIX}-{code}-{date}-{count:04d}"
        logger.debug("Allocated folio %s", folio)
        return folio

    def current(self, ticket_type: TicketType | str, date: str) -> int:
        """Last counter issued for *ticket_type* on *date* (``YYMMDD``), 0 if none."""
        code = TICKET_TYPE_CODES[TicketType(ticket_type)]
        with self._lock:
            return self._counters.get(f"{date}-{code}", 0)
