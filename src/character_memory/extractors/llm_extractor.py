import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from casual_llm import LLMProvider, SystemMessage, UserMessage
from pydantic import ValidationError

from character_memory.characters import CharacterRegistry
from character_memory.errors import ExtractionFailure
from character_memory.extractors.prompts import EPISODE_MEMORY_PROMPT, build_episode_prompt
from character_memory.models import EpisodeDelta, MemoryFact

logger = logging.getLogger(__name__)


class LLMEpisodeExtracter:
    """Extracts scoped facts from episode text with an LLM."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        registry: CharacterRegistry,
        prompt: str = EPISODE_MEMORY_PROMPT,
        temperature: float = 0.2,
    ):
        self.llm_provider = llm_provider
        self.registry = registry
        self.system_prompt = build_episode_prompt(registry, prompt)
        self.temperature = temperature

    async def extract(
        self, episode_text: str, episode_id: str, episode_no: int, version: int = 1
    ) -> EpisodeDelta:
        if not episode_text or not episode_text.strip():
            raise ExtractionFailure(f"Episode {episode_id} has no text to extract from")

        llm_messages = [
            SystemMessage(content=self.system_prompt),
            UserMessage(
                content=f"Extract the important facts from episode {episode_no}:\n\n{episode_text}"
            ),
        ]

        try:
            logger.debug(f"Extracting facts from episode {episode_id} v{version}")
            response = await self.llm_provider.chat(
                messages=llm_messages, response_format="json", temperature=self.temperature
            )
            response_data = json.loads(response.content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse extraction JSON for episode {episode_id}: {e}")
            raise ExtractionFailure(f"Extraction for {episode_id} returned invalid JSON: {e}") from e
        except Exception as e:
            logger.error(f"Extraction LLM failed for episode {episode_id}: {e}")
            raise ExtractionFailure(f"Extraction for {episode_id} failed: {e}") from e

        facts = self._to_facts(response_data, episode_id)

        try:
            delta = EpisodeDelta(
                episode_id=episode_id,
                episode_no=episode_no,
                version=version,
                facts=facts,
                extracted_at=datetime.now(),
            )
        except ValidationError as e:
            raise ExtractionFailure(f"Invalid episode delta for {episode_id}: {e}") from e

        logger.info(
            f"Extracted {len(delta.facts)} facts from episode {episode_id} v{version} "
            f"({len(delta.world_facts)} world, {len(delta.character_facts)} character)"
        )
        return delta

    def _to_facts(self, data: Any, episode_id: str) -> List[MemoryFact]:
        """Validate the raw LLM output and flatten it into ordered facts."""
        if not isinstance(data, dict) or "worldFacts" not in data:
            raise ExtractionFailure(f"Extraction for {episode_id} is missing 'worldFacts'")

        world_entries = data["worldFacts"]
        character_sections = data.get("characterFacts")
        if character_sections is None:
            character_sections = {}

        if not isinstance(world_entries, list):
            raise ExtractionFailure(f"'worldFacts' for {episode_id} is not a list")
        if not isinstance(character_sections, dict):
            raise ExtractionFailure(f"'characterFacts' for {episode_id} is not an object")

        unknown = [key for key in character_sections if key not in self.registry]
        if unknown:
            raise ExtractionFailure(
                f"Extraction for {episode_id} names unknown characters: {', '.join(unknown)}"
            )

        facts = [self._to_fact(entry, "world", None, episode_id) for entry in world_entries]

        # Registry order keeps fact indices stable across runs of the same output
        for character_id in self.registry.ids:
            entries = character_sections.get(character_id)
            if entries is None:
                entries = []
            if not isinstance(entries, list):
                raise ExtractionFailure(
                    f"'characterFacts.{character_id}' for {episode_id} is not a list"
                )
            facts.extend(
                self._to_fact(entry, "character", character_id, episode_id) for entry in entries
            )

        return facts

    def _to_fact(
        self, entry: Dict[str, Any], scope: str, character_id: Optional[str], episode_id: str
    ) -> MemoryFact:
        if not isinstance(entry, dict):
            raise ExtractionFailure(f"Malformed fact in {episode_id}: {entry!r}")
        try:
            fact = MemoryFact(
                text=entry.get("text", ""),
                scope=scope,
                character_id=character_id,
                importance=entry.get("importance"),
            )
        except ValidationError as e:
            raise ExtractionFailure(f"Invalid fact in {episode_id}: {e}") from e
        return self.registry.validate_fact(fact)
