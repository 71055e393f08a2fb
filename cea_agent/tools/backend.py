"""LangChain tools for the CEA tool backend.

Each tool wraps one remote backend capability and returns a human-readable
string the model can use to answer the user.  Backend failures come back as
an apologetic string rather than an exception, so the agent can tell the
user and carry on.  Ticket creation goes through :class:`TicketService` so
that a folio exists even when the backend is down.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.tools import BaseTool, tool

from cea_agent.models import TicketType
from cea_agent.services.tickets import TicketService
from cea_agent.services.tool_backend import ToolBackendClient, ToolBackendError

logger = logging.getLogger(__name__)


def _call(backend: ToolBackendClient, name: str, arguments: dict[str, Any]) -> str:
    """Run a remote tool; drop unset arguments and turn failures into text."""
    arguments = {k: v for k, v in arguments.items() if v is not None}
    try:
        result = backend.call_tool(name, arguments)
    except ToolBackendError as e:
        logger.error("Tool %s failed: %s", name, e)
        return f"Lo siento, no pude consultar esa información en este momento. Error: {e}."
    if result.is_error:
        logger.warning("Tool %s returned an error: %s", name, result.text)
        return f"El sistema respondió con un error: {result.text}"
    return result.text


def build_backend_tools(backend: ToolBackendClient, ticket_service: TicketService) -> list[BaseTool]:
    """Create the tool set shared by the specialist agents."""

    # ── Contracts & customers ───────────────────────────────────────

    @tool
    def get_contract_details(contract_number: str) -> str:
        """Get the details of a CEA contract (holder, address, status, tariff).

        Args:
            contract_number: The contract number printed on the user's recibo.
        """
        return _call(backend, "get_contract_details", {"contract_number": contract_number})

    @tool("Buscar_Customer_Por_Contrato")
    def buscar_customer_por_contrato(contract_number: str) -> str:
        """Find the customer record linked to a contract number.

        Args:
            contract_number: The contract number printed on the user's recibo.
        """
        return _call(backend, "Buscar_Customer_Por_Contrato", {"contract_number": contract_number})

    @tool("Crear_Customer")
    def crear_customer(
        name: str,
        contract_number: str,
        email: str | None = None,
        phone: str | None = None,
    ) -> str:
        """Register a customer for a contract so tickets can be linked to them.

        Args:
            name: The customer's full name.
            contract_number: The contract the customer belongs to.
            email: Optional contact email.
            phone: Optional contact phone number.
        """
        return _call(
            backend,
            "Crear_Customer",
            {"name": name, "contract_number": contract_number, "email": email, "phone": phone},
        )

    # ── Billing & consumption ───────────────────────────────────────

    @tool
    def get_deuda(contract_number: str) -> str:
        """Get the outstanding balance (adeudo) and due dates for a contract.

        Args:
            contract_number: The contract number printed on the user's recibo.
        """
        return _call(backend, "get_deuda", {"contract_number": contract_number})

    @tool
    def get_consumo(contract_number: str, months: list[str] | None = None) -> str:
        """Get water consumption (m³) and readings for a contract.

        Args:
            contract_number: The contract number printed on the user's recibo.
            months: Optional list of months in YYYY-MM format. All recent
                    months are returned when omitted.
        """
        return _call(backend, "get_consumo", {"contract_number": contract_number, "months": months})

    @tool
    def get_tarifa_contrato(contract_number: str) -> str:
        """Get the tariff applied to a contract.

        Args:
            contract_number: The contract number printed on the user's recibo.
        """
        return _call(backend, "get_tarifa_contrato", {"contract_number": contract_number})

    @tool
    def get_conceptos_cea() -> str:
        """List the billing concepts that can appear on a CEA recibo, with explanations."""
        return _call(backend, "get_conceptos_cea", {})

    # ── Tickets & advisors ──────────────────────────────────────────

    @tool
    def get_client_tickets(contract_number: str) -> str:
        """List all tickets (open and closed) filed for a contract.

        Args:
            contract_number: The contract number printed on the user's recibo.
        """
        return _call(backend, "get_client_tickets", {"contract_number": contract_number})

    @tool
    def get_active_tickets(contract_number: str | None = None) -> str:
        """List active (not yet closed) tickets, optionally for one contract.

        Args:
            contract_number: Optional contract number to filter by.
        """
        return _call(backend, "get_active_tickets", {"contract_number": contract_number})

    @tool
    def get_available_agent() -> str:
        """Find a human advisor who is available to take over the conversation."""
        return _call(backend, "get_available_agent", {})

    @tool("Crear_ticket")
    def crear_ticket(
        service_type: TicketType,
        title: str,
        description: str,
        contract_number: str | None = None,
        email: str | None = None,
        location: str | None = None,
    ) -> str:
        """Open a support ticket and return its folio for the user.

        Args:
            service_type: One of fuga, aclaraciones, pagos, lecturas,
                          revision_recibo, recibo_digital, urgente.
            title: A short title for the case.
            description: What happened, in the user's words plus any details gathered.
            contract_number: The related contract number, if known.
            email: The user's email, if given.
            location: Address or coordinates (required for fugas).
        """
        result = ticket_service.create_ticket(
            service_type,
            title,
            description,
            contract_number=contract_number,
            email=email,
            location=location,
        )
        if not result.success:
            return f"No se pudo crear el ticket. Error: {result.error}"
        return f"Ticket creado correctamente.\n  Folio: {result.folio}\n  Estado: abierto"

    return [
        get_contract_details,
        buscar_customer_por_contrato,
        crear_customer,
        get_deuda,
        get_consumo,
        get_tarifa_contrato,
        get_conceptos_cea,
        get_client_tickets,
        get_active_tickets,
        get_available_agent,
        crear_ticket,
    ]
