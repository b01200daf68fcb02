"""
Memory tool definitions for the agent's LLM.

This module provides the tools the LLM can call to manage important facts
and search past conversations on demand.
"""

import logging
from typing import Any

from .memory import MemoryManager

logger = logging.getLogger("memoir.tools")

DEFAULT_SEARCH_TOP_K = 5
MAX_SEARCH_TOP_K = 20

OWNER_ONLY_TOOLS = {"important_add", "important_delete"}


class MemoryToolRegistry:
    """
    Registry of memory tools available to the LLM.

    Adding and deleting important facts is restricted to the bot owner;
    listing, remembering and searching are open to everyone.
    """

    def __init__(self, memory: MemoryManager, is_owner: bool = False):
        self.memory = memory
        self.is_owner = is_owner

    def get_definitions(self) -> list[dict[str, Any]]:
        """
        Get the JSON schema definitions for all available tools.
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": "important_add",
                    "description": "Save an important fact to persistent memory (owner only). Use for user preferences, important dates, key decisions, or anything worth remembering long-term.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "content": {
                                "type": "string",
                                "description": "The important fact to remember"
                            }
                        },
                        "required": ["content"]
                    }
                }
            },
            {
                "type": "function",
                "function": {
                    "name": "important_list",
                    "description": "List all important facts stored in memory",
                    "parameters": {
                        "type": "object",
                        "properties": {},
                        "required": []
                    }
                }
            },
            {
                "type": "function",
                "function": {
                    "name": "important_delete",
                    "description": "Delete an important entry by ID (owner only)",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "id": {
                                "type": "string",
                                "description": "The ID of the important entry to delete"
                            }
                        },
                        "required": ["id"]
                    }
                }
            },
            {
                "type": "function",
                "function": {
                    "name": "remember",
                    "description": "Save important information to long-term memory",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "content": {
                                "type": "string",
                                "description": "Content to remember"
                            }
                        },
                        "required": ["content"]
                    }
                }
            },
            {
                "type": "function",
                "function": {
                    "name": "search_memory",
                    "description": "Search past conversations semantically. Returns the most relevant past conversation turns matching the query.",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "query": {
                                "type": "string",
                                "description": "Natural language search query"
                            },
                            "top_k": {
                                "type": "integer",
                                "description": f"Number of results to return (default: {DEFAULT_SEARCH_TOP_K}, max: {MAX_SEARCH_TOP_K})",
                                "default": DEFAULT_SEARCH_TOP_K
                            }
                        },
                        "required": ["query"]
                    }
                }
            },
        ]

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """
        Execute a tool by name with arguments.
        """
        logger.info(f"Executing tool: {tool_name} with args: {arguments}")

        if tool_name in OWNER_ONLY_TOOLS and not self.is_owner:
            return "Permission denied: only the bot owner can modify important entries"

        try:
            if tool_name == "important_add":
                content = arguments.get("content", "")
                if not content.strip():
                    return "No content provided."
                existing = {e.id: e for e in await self.memory.list_important()}
                entry_id = await self.memory.add_important(content)
                if entry_id in existing:
                    return f"Already stored (ID: {entry_id}): {existing[entry_id].content}"
                return f"Saved (ID: {entry_id}): {content}"

            elif tool_name == "important_list":
                return await self._list_important()

            elif tool_name == "important_delete":
                entry_id = arguments.get("id", "")
                if await self.memory.delete_important(entry_id):
                    return f"Deleted important entry: {entry_id}"
                return f"No important entry with ID: {entry_id}"

            elif tool_name == "remember":
                content = arguments.get("content", "")
                if not content.strip():
                    return "No content provided."
                await self.memory.add_to_long_term(content)
                return "Saved"

            elif tool_name == "search_memory":
                return await self._search_memory(
                    arguments.get("query", ""),
                    arguments.get("top_k", DEFAULT_SEARCH_TOP_K),
                )

            else:
                return f"Tool {tool_name} not found."

        except Exception as e:
            logger.error(f"Error executing tool {tool_name}: {e}")
            return f"Error executing tool: {e}"

    async def _list_important(self) -> str:
        entries = await self.memory.list_important()
        if not entries:
            return "No important entries stored."

        output = f"Important entries ({len(entries)}):\n\n"
        for entry in entries:
            ts = entry.created_at.strftime("%Y-%m-%d %H:%M")
            output += f"ID: {entry.id} | {ts}\n  {entry.content}\n\n"
        return output

    async def _search_memory(self, query: str, top_k: int) -> str:
        if not query.strip():
            return "No query provided."

        top_k = max(1, min(int(top_k), MAX_SEARCH_TOP_K))
        turns = await self.memory.search_memory(query, top_k=top_k)
        if not turns:
            return "No relevant conversations found."

        output = f"Found {len(turns)} relevant conversations:\n\n"
        for turn in turns:
            output += f"{turn.format_with_timestamp()}\n\n"
        return output
