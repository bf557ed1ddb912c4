#!/usr/bin/env python3
"""Interactive chat CLI with context window management."""

import argparse
import json
import logging
import sys
from pathlib import Path

from config.settings import Settings
from llm.base_client import LLMError
from llm.factory import create_backends
from memory.manager import ConversationManager
from memory.models import Agent, Conversation, CompressionStrategy

CLI_AGENT_ID = "cli-assistant"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

HELP_TEXT = """Commands:
  /status         Show context window usage
  /compress       Compress the conversation now
  /archive-stale  Archive conversations inactive past the threshold
  /quit           Save and exit"""


def setup_logging(level: str = "INFO"):
    """Configure console logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_history(manager: ConversationManager, path: Path):
    """Load saved conversations into the manager."""
    if not path.exists():
        return
    data = json.loads(path.read_text(encoding="utf-8"))
    manager.load_conversations(Conversation.model_validate(item) for item in data)


def save_history(manager: ConversationManager, path: Path):
    """Write every conversation to the history file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [c.model_dump(mode="json") for c in manager.export_conversations()]
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def print_status(conversation: Conversation):
    state = conversation.context_state
    print(
        f"messages={state.total_messages} "
        f"tokens~{state.total_tokens}/{state.max_context_tokens} "
        f"({state.token_percentage_used:.1f}%) "
        f"until_compression={state.messages_until_compression} "
        f"last_compression={state.last_compression_at or '-'}"
    )


def run_repl(manager: ConversationManager, conversation: Conversation, settings: Settings):
    """Read user input and run turns until /quit or EOF."""
    print(HELP_TEXT)
    while True:
        try:
            line = input("\nyou> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return

        if not line:
            continue
        if line == "/quit":
            return
        if line == "/status":
            print_status(conversation)
            continue
        if line == "/compress":
            result = manager.compress_conversation(conversation.id)
            print(f"Removed {result.messages_removed} messages using {result.strategy.value}")
            continue
        if line == "/archive-stale":
            count = manager.auto_archive_stale(settings.auto_archive_days)
            print(f"Archived {count} conversations")
            continue

        try:
            reply = manager.append_turn(conversation.id, line, agent_id=CLI_AGENT_ID)
        except LLMError as e:
            retry_hint = " (retryable)" if e.retryable else ""
            print(f"Error: {e}{retry_hint}", file=sys.stderr)
            continue

        print(f"\nassistant> {reply.content}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Chat with an LLM while keeping the conversation inside its context window"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["openai", "anthropic"],
        default="openai",
        help="Completion backend (default: openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Override the provider's default model"
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=DEFAULT_SYSTEM_PROMPT,
        help="System prompt for the assistant"
    )
    parser.add_argument(
        "--strategy",
        type=str,
        choices=[s.value for s in CompressionStrategy],
        default=CompressionStrategy.SUMMARIZE.value,
        help="Compression strategy (default: summarize)"
    )
    parser.add_argument(
        "--history",
        type=Path,
        help="JSON file to load conversations from and save them to"
    )
    parser.add_argument(
        "--conversation",
        type=str,
        help="Resume the conversation with this id from the history file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    settings = Settings(
        llm_provider=args.provider,
        llm_model=args.model,
        compression_strategy=args.strategy,
        verbose=args.verbose,
    )
    setup_logging("DEBUG" if settings.verbose else "WARNING")

    if not settings.get_llm_api_key():
        print(f"No API key configured for {settings.llm_provider}", file=sys.stderr)
        sys.exit(1)

    backends = create_backends(settings)
    manager = ConversationManager.from_settings(settings, backends)
    manager.register_agent(Agent(
        id=CLI_AGENT_ID,
        name="Assistant",
        system_prompt=args.system_prompt,
        provider_id=settings.llm_provider,
        model_name=settings.llm_model,
    ))

    if args.history:
        load_history(manager, args.history)

    conversation = manager.get(args.conversation) if args.conversation else None
    if args.conversation and conversation is None:
        print(f"Conversation not found: {args.conversation}", file=sys.stderr)
        sys.exit(1)
    if conversation is None:
        conversation = manager.create(agent_id=CLI_AGENT_ID)

    print(f"Conversation {conversation.id}")
    try:
        run_repl(manager, conversation, settings)
    finally:
        if args.history:
            save_history(manager, args.history)


if __name__ == "__main__":
    main()
