"""CEA Querétaro support agent — customer-support chat for a water utility.

Architecture Overview
=====================

Every user message goes through a LangGraph state machine:

1. **guardrails** — a pluggable input check that can mask text or stop the
   workflow with a structured failure payload.
2. **classify** — a cheap model with structured output labels the message:
   ``fuga``, ``pagos``, ``hablar_asesor``, ``informacion``, ``consumos``,
   ``contrato`` or ``tickets``.
3. **specialist** — the agent for that label answers, calling the remote
   tool backend (contracts, debt, consumption, tickets) as needed.  Agents
   whose tools require approval are driven by an auto-approval loop capped
   at 5 rounds.
4. **advisor** — ``hablar_asesor`` skips the models and opens an urgent
   ticket directly.

Key Design Decisions
--------------------
- **Folios**: every ticket gets a local ``CEA-{TYPE}-{YYMMDD}-{NNNN}`` folio
  before the remote call; a folio issued by the backend supersedes it, and
  remote failures never fail ticket creation.
- **Memory**: conversation history lives in an in-process store keyed by
  ``conversationId``, written back only when a request succeeds.  Requests
  for the same conversation are serialised.
- **Time**: agents learn the current time only from a context line in the
  user turn, produced by a clock pinned to America/Mexico_City.
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``cea_agent/agent.py`` — agent definitions and orchestrator wiring
- ``cea_agent/orchestrator.py`` — the LangGraph workflow
- ``cea_agent/runner.py`` — single agent invocation and its result types
- ``cea_agent/approval.py`` — tool-approval loop
- ``cea_agent/models.py`` — conversation, classification and ticket models
- ``cea_agent/errors.py`` — workflow exceptions
- ``cea_agent/config.py`` — configuration from environment variables / SSM
- ``cea_agent/prompts.py`` — agent instructions
- ``cea_agent/server.py`` — FastAPI application
- ``cea_agent/main.py`` — CLI chat interface
- ``cea_agent/services/`` — tool backend client, tickets, folios, store, guardrails, metrics
- ``cea_agent/tools/`` — LangChain tools over the backend
- ``cea_agent/api/`` — FastAPI routes and Pydantic schemas
"""
