"""
Command-line entry point for memoir.

Operates on the memory store configured in config.yaml / .env:

    memoir context "what did we say about cats?"
    memoir add-turn alice "I have two cats" "Nice! What are their names?"
    memoir remember "Alice is allergic to peanuts"
    memoir important list
    memoir important add "Alice's birthday is March 3rd"
    memoir important delete 1a2b3c4d
    memoir search "pets" --top-k 3
    memoir stats
"""

import argparse
import asyncio
import logging
import sys

from .config import config
from .memory import MemoryManager, MemoryStoreError, create_memory_manager
from .tools import MemoryToolRegistry

logger = logging.getLogger("memoir.main")


async def _open_memory() -> MemoryManager:
    return await create_memory_manager(
        data_dir=config.storage.data_dir,
        embedding_provider=config.embedding.provider,
        embedding_api_key=config.embedding.api_key,
        embedding_model=config.embedding.model,
        embedding_dimensions=config.embedding.dimensions,
        model_cache_dir=config.model_cache_dir,
        idle_timeout=config.embedding.idle_timeout_seconds,
        unload_poll_interval=config.embedding.unload_poll_seconds,
        recent_window=config.memory.recent_window,
        related_top_k=config.memory.related_top_k,
        min_similarity=config.memory.min_similarity,
        index_initial_capacity=config.memory.index_initial_capacity,
        index_growth_step=config.memory.index_growth_step,
    )


async def run_command(args: argparse.Namespace) -> int:
    """Run one CLI command against a freshly opened memory store."""
    memory = await _open_memory()
    # The CLI user owns the store
    tools = MemoryToolRegistry(memory, is_owner=True)

    try:
        if args.command == "context":
            context = await memory.get_context(args.query)
            print(context or "(no memory context)")

        elif args.command == "add-turn":
            await memory.add_turn(args.author, args.input, args.response)
            print("Turn recorded")

        elif args.command == "remember":
            print(await tools.execute("remember", {"content": args.text}))

        elif args.command == "important":
            if args.action == "list":
                print(await tools.execute("important_list", {}))
            elif args.action == "add":
                print(await tools.execute("important_add", {"content": args.text}))
            else:
                print(await tools.execute("important_delete", {"id": args.id}))

        elif args.command == "search":
            print(await tools.execute(
                "search_memory", {"query": args.query, "top_k": args.top_k}
            ))

        elif args.command == "stats":
            turns = await memory.count()
            important = await memory.list_important()
            print(f"Stored turns:      {turns}")
            print(f"Indexed turns:     {memory.store.index_size}")
            print(f"Index capacity:    {memory.store.index_capacity}")
            print(f"Important entries: {len(important)}")
            print(f"Embedding:         {config.embedding.provider} "
                  f"({memory.store.embedding_service.dimensions} dims)")

        return 0

    finally:
        await memory.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memoir",
        description="Conversational memory for chat agents",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    context = subparsers.add_parser("context", help="Print the memory context for a prompt")
    context.add_argument("query")

    add_turn = subparsers.add_parser("add-turn", help="Record a completed exchange")
    add_turn.add_argument("author")
    add_turn.add_argument("input")
    add_turn.add_argument("response")

    remember = subparsers.add_parser("remember", help="Save a fact to long-term memory")
    remember.add_argument("text")

    important = subparsers.add_parser("important", help="Manage important facts")
    actions = important.add_subparsers(dest="action", required=True)
    actions.add_parser("list", help="List important facts")
    important_add = actions.add_parser("add", help="Add an important fact")
    important_add.add_argument("text")
    important_delete = actions.add_parser("delete", help="Delete an important fact by ID")
    important_delete.add_argument("id")

    search = subparsers.add_parser("search", help="Semantic search over past conversations")
    search.add_argument("query")
    search.add_argument("--top-k", type=int, default=5)

    subparsers.add_parser("stats", help="Show store statistics")

    return parser


def main(argv: list[str] | None = None):
    """Entry point for the application."""
    args = build_parser().parse_args(argv)
    config.setup_logging()

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    try:
        sys.exit(asyncio.run(run_command(args)))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(130)
    except MemoryStoreError as e:
        logger.error(f"Memory operation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
