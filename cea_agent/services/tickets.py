"""Ticket creation against the remote backend with a local folio fallback.

A folio is always allocated locally *before* the remote call, so the user
gets a usable identifier even when the backend is down.  When the backend
answers with its own folio, that one wins.  Once a folio is returned to the
caller it is never regenerated; mismatches between local and remote folios
are logged for out-of-band reconciliation.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import httpx

from cea_agent.models import TicketCreationResult, TicketRecord, TicketType
from cea_agent.services.folio import FolioGenerator
from cea_agent.services.metrics import metrics
from cea_agent.services.tool_backend import ToolBackendClient, ToolBackendError, ToolCallResult

logger = logging.getLogger(__name__)

CREATE_TICKET_TOOL = "Crear_ticket"

FOLIO_RE = re.compile(r"folio[:\s]+([A-Z0-9-]+)", re.IGNORECASE)


def extract_folio(response: ToolCallResult | Mapping[str, Any] | str | None) -> str | None:
    """Pull a remote-issued folio out of a create-ticket response.

    Looks at a ``folio`` key in structured content first, then matches
    ``folio: XXX`` in the free text, keeping only tokens with a digit.
    Returns ``None`` when nothing matches.
    """
    if response is None:
        return None

    if isinstance(response, ToolCallResult):
        structured, text = response.structured, response.text
    elif isinstance(response, Mapping):
        structured, text = response, ""
    else:
        structured, text = None, response

    if structured:
        value = structured.get("folio")
        if isinstance(value, str) and value.strip():
            return value.strip()

    for match in FOLIO_RE.finditer(text or ""):
        candidate = match.group(1)
        # Prose such as "el folio del reporte" is not a folio
        if any(ch.isdigit() for ch in candidate):
            return candidate
        logger.debug("Ignoring folio-like token without digits: %r", candidate)
    return None


class TicketService:
    """Creates support tickets, reconciling local and remote folios."""

    def __init__(self, backend: ToolBackendClient, folio_generator: FolioGenerator) -> None:
        self._backend = backend
        self._folios = folio_generator

    def create_ticket(
        self,
        service_type: TicketType | str,
        title: str,
        description: str,
        contract_number: str | None = None,
        email: str | None = None,
        location: str | None = None,
    ) -> TicketCreationResult:
        # An unknown type is a caller bug, not a runtime failure: let it raise
        service_type = TicketType(service_type)

        try:
            local_folio = self._folios.allocate(service_type)
        except Exception as exc:
            logger.exception("Could not allocate a local folio for %s ticket", service_type.value)
            return TicketCreationResult(
                success=False,
                error=str(exc),
                message="No fue posible generar el folio del reporte.",
            )

        record = TicketRecord(
            service_type=service_type,
            title=title,
            description=description,
            contract_number=contract_number,
            email=email,
            location=location,
            folio=local_folio,
        )
        # The remote system assigns its own folio when it can
        payload = record.model_dump(mode="json", exclude={"folio"}, exclude_none=True)

        remote_folio = None
        try:
            response = self._backend.call_tool(CREATE_TICKET_TOOL, payload)
        except (ToolBackendError, httpx.HTTPError) as exc:
            logger.warning(
                "Remote ticket creation failed; keeping local folio %s: %s", local_folio, exc,
            )
            metrics.increment("Tickets/LocalFolioFallback", Reason="remote_failure")
        except Exception:
            # Whatever the backend sends back, the user keeps the local folio
            logger.exception("Unexpected failure creating remote ticket; keeping local folio %s", local_folio)
            metrics.increment("Tickets/LocalFolioFallback", Reason="remote_failure")
        else:
            if response.is_error:
                logger.warning(
                    "Remote ticket creation returned an error; keeping local folio %s: %s",
                    local_folio, response.text,
                )
                metrics.increment("Tickets/LocalFolioFallback", Reason="remote_error")
            else:
                remote_folio = extract_folio(response)
                if remote_folio is None:
                    logger.info("No folio in remote response; keeping local folio %s", local_folio)
                    metrics.increment("Tickets/LocalFolioFallback", Reason="no_remote_folio")
                elif remote_folio != local_folio:
                    logger.info(
                        "Remote folio %s supersedes local folio %s", remote_folio, local_folio,
                    )

        folio = remote_folio or local_folio
        return TicketCreationResult(
            success=True,
            folio=folio,
            remote_folio=remote_folio,
            message=f"Reporte creado con folio {folio}.",
            record=record.model_copy(update={"folio": folio}),
        )
