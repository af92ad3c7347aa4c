"""
Base protocol for episode extracters.
"""

from __future__ import annotations

from typing import Protocol

from character_memory.models import EpisodeDelta


class EpisodeExtracter(Protocol):
    """
    Protocol for episode extracters.

    This is a Protocol (PEP 544), meaning any class that implements
    the extract() method with this signature is compatible - no
    inheritance required.
    """

    async def extract(
        self, episode_text: str, episode_id: str, episode_no: int, version: int = 1
    ) -> EpisodeDelta:
        """
        Extract the facts of one episode.

        Extraction is all-or-nothing: either every fact is returned or
        ExtractionFailure is raised. Output is not deterministic, only
        structurally constrained.

        Args:
            episode_text: Raw episode text
            episode_id: Stable external episode id
            episode_no: Narrative order of the episode
            version: Extraction version

        Returns:
            EpisodeDelta with world facts first, then character facts
        """
        ...
