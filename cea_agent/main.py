"""CLI entry point for the CEA Querétaro support agent.

A terminal chat for testing and development. For production, use the
FastAPI server (cea_agent/server.py).

Usage:
    python -m cea_agent.main            # normal mode (quiet)
    python -m cea_agent.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import json
import logging
import uuid

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("cea_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="CEA Querétaro support agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--stateless", action="store_true",
        help="Do not keep conversation history between messages",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    # Imported late: config reads the environment on import
    from cea_agent.agent import create_cea_orchestrator

    print("\n" + "=" * 60)
    print("  CEA Querétaro - CLI Chat")
    print("=" * 60)
    print("  Escribe tu mensaje y presiona Enter.")
    print("  Comandos: 'salir' para terminar, 'nueva' para otra conversación.")
    print("=" * 60 + "\n")

    orchestrator = create_cea_orchestrator()
    conversation_id = None if args.stateless else str(uuid.uuid4())
    logger.info("Started conversation: %s", conversation_id or "<stateless>")

    while True:
        try:
            user_input = input("Tú: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n¡Hasta luego!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("salir", "exit", "quit", "q"):
            print("\n¡Hasta luego! 💧")
            break

        if user_input.lower() in ("nueva", "new"):
            conversation_id = None if args.stateless else str(uuid.uuid4())
            print(f"\n>> Nueva conversación: {(conversation_id or 'stateless')[:8]}...\n")
            continue

        try:
            result = orchestrator.run(user_input, conversation_id)
            if result.tripped:
                reply = json.dumps(result.guardrail, ensure_ascii=False)
            else:
                reply = result.output_text
            label = result.classification.value if result.classification else "-"
            print(f"\nMaría [{label}]: {reply}\n")

        except KeyboardInterrupt:
            print("\n\n¡Hasta luego!")
            break
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nMaría: Lo siento, algo salió mal: {e}")
            print("     Intenta de nuevo o escribe 'nueva' para empezar otra conversación.\n")


if __name__ == "__main__":
    main()
