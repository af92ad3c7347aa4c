"""
Character agent shell.

Binds a character and the episode they are living through to the retrieval
engine and exposes a single capability, recall, to a conversational LLM
loop (directly or as a function-calling tool).
"""

import logging
from typing import Any, Dict, Optional

from character_memory.characters import CharacterInfo, CharacterRegistry
from character_memory.errors import StoreQueryFailure
from character_memory.models import RecallResult, RecalledMemory
from character_memory.retrieval import MemoryRetriever

logger = logging.getLogger(__name__)

RECALL_TOOL_NAME = "recall_memory"


class CharacterAgent:
    def __init__(
        self,
        retriever: MemoryRetriever,
        character_id: str,
        current_episode_no: int,
        registry: CharacterRegistry,
        default_top_k: int = 5,
        degrade_on_store_error: bool = False,
        include_scores: bool = False,
        include_scope: bool = False,
    ):
        """
        Args:
            retriever: Retrieval engine for the story's index
            character_id: The character this agent speaks as
            current_episode_no: Episode the character is currently in
            registry: Character table; character_id must be in it
            default_top_k: Memories returned when the caller gives no topK
            degrade_on_store_error: Return no memories instead of raising
                when the store query fails
            include_scores: Surface similarity scores in recalled memories
            include_scope: Surface scope and owning character in recalled memories

        Raises:
            UnknownCharacterError: If character_id is not registered
        """
        if current_episode_no < 1:
            raise ValueError(f"current_episode_no must be >= 1 (got {current_episode_no})")

        self.character: CharacterInfo = registry.get(character_id)
        self.retriever = retriever
        self.registry = registry
        self.current_episode_no = current_episode_no
        self.default_top_k = default_top_k
        self.degrade_on_store_error = degrade_on_store_error
        self.include_scores = include_scores
        self.include_scope = include_scope

    @property
    def character_id(self) -> str:
        return self.character.id

    def at_episode(self, episode_no: int) -> "CharacterAgent":
        """Same character, bound to another episode."""
        return CharacterAgent(
            retriever=self.retriever,
            character_id=self.character_id,
            current_episode_no=episode_no,
            registry=self.registry,
            default_top_k=self.default_top_k,
            degrade_on_store_error=self.degrade_on_store_error,
            include_scores=self.include_scores,
            include_scope=self.include_scope,
        )

    async def recall(self, query: str, top_k: Optional[int] = None) -> RecallResult:
        """
        Recall what this character knows about `query`.

        Returns:
            RecallResult with memories shaped {text, episodeNo, importance}
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        if top_k is None:
            top_k = self.default_top_k

        try:
            results = await self.retriever.search(
                query=query,
                character_id=self.character_id,
                current_episode_no=self.current_episode_no,
                top_k=top_k,
            )
        except StoreQueryFailure as e:
            if not self.degrade_on_store_error:
                raise
            logger.warning(f"Recall for {self.character_id} degraded to no memories: {e}")
            return RecallResult.of([])

        memories = [
            RecalledMemory.from_search_result(
                result, include_scope=self.include_scope, include_score=self.include_scores
            )
            for result in results
        ]
        return RecallResult.of(memories)

    def tool_definition(self) -> Dict[str, Any]:
        """JSON-schema function description of recall for LLM tool calling."""
        return {
            "type": "function",
            "function": {
                "name": RECALL_TOOL_NAME,
                "description": (
                    f"Search the memories of {self.character.name}: facts you experienced "
                    "or learned in earlier episodes. Use it to remember your past."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Keywords or a question about what to remember",
                        },
                        "topK": {
                            "type": "integer",
                            "minimum": 1,
                            "description": "Maximum number of memories to recall",
                            "default": self.default_top_k,
                        },
                    },
                    "required": ["query"],
                },
            },
        }

    async def call_tool(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Execute a recall tool call and return its JSON-ready output."""
        result = await self.recall(arguments.get("query", ""), top_k=arguments.get("topK"))
        return result.to_dict()
