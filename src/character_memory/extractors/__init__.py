"""
Fact extraction from episode text.

Provides the extracter protocol and the LLM-backed implementation with its
prompt.
"""

from character_memory.extractors.base import EpisodeExtracter
from character_memory.extractors.llm_extractor import LLMEpisodeExtracter
from character_memory.extractors.prompts import EPISODE_MEMORY_PROMPT, build_episode_prompt


__all__ = [
    "EpisodeExtracter",
    "LLMEpisodeExtracter",
    # Prompts
    "EPISODE_MEMORY_PROMPT",
    "build_episode_prompt",
]
