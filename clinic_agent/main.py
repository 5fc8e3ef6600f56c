"""CLI entry point for the clinic chat agent.

A terminal chat loop for trying prompts and providers locally.  The
history lives in this process and is sent in full on every turn, exactly
like the website widget does.  Bookings are written only when Supabase
credentials are configured.

Usage:
    uv run python -m clinic_agent.main            # normal mode (quiet)
    uv run python -m clinic_agent.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from clinic_agent.agent import (
    ConfigurationError,
    ProvidersExhaustedError,
    create_clinic_agent,
)
from clinic_agent.config import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL
from clinic_agent.models import ConversationTurn, Role
from clinic_agent.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

GREETING = "Namaste! I am Dr. Priyanka's virtual assistant. How can I guide you towards wellness today?"


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("clinic_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    parser = argparse.ArgumentParser(description="Clinic chat agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Clinic Chat Agent - CLI")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    store = SupabaseClient() if SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY else None
    agent = create_clinic_agent(store)
    session_id = str(uuid.uuid4())
    history: list[ConversationTurn] = [ConversationTurn(role=Role.ASSISTANT, content=GREETING)]
    logger.info("Started new session: %s", session_id)
    print(f"Assistant: {GREETING}\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Stay well!")
            break

        if user_input.lower() == "new":
            session_id = str(uuid.uuid4())
            history = [ConversationTurn(role=Role.ASSISTANT, content=GREETING)]
            print(f"\n>> New session started: {session_id[:8]}...\n")
            continue

        history.append(ConversationTurn(role=Role.USER, content=user_input))
        try:
            reply = agent.reply(history, session_id=session_id)
        except ConfigurationError as e:
            print(f"\nAssistant unavailable: {e} Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY.\n")
            break
        except ProvidersExhaustedError:
            history.pop()
            print("\nAssistant: I am having trouble connecting right now. Please try again later.\n")
            continue
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except Exception as e:
            logger.exception("Error processing message")
            history.pop()
            print(f"\nAssistant: I'm sorry, something went wrong: {e}")
            print("     Please try again or type 'new' to start a fresh session.\n")
            continue

        history.append(ConversationTurn(role=Role.ASSISTANT, content=reply))
        print(f"\nAssistant: {reply}\n")

    chat_log = agent.config.chat_log
    if chat_log is not None:
        chat_log.shutdown(wait=True)
    if store is not None:
        store.close()


if __name__ == "__main__":
    main()
