"""
The closed set of characters a story knows about.

A single CharacterRegistry is consulted everywhere character ownership
matters: fact validation, the extraction prompt and its output schema, and
agent binding. Nothing else in the package keeps its own list of ids.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Union

from pydantic import BaseModel, ValidationError

from character_memory.errors import ConfigurationError, UnknownCharacterError
from character_memory.identity import WORLD_SENTINEL
from character_memory.models import MemoryFact

logger = logging.getLogger(__name__)


class CharacterInfo(BaseModel):
    id: str
    name: str
    description: str = ""


class CharacterRegistry:
    """Ordered, read-only table of known characters keyed by id."""

    def __init__(self, characters: Iterable[CharacterInfo]):
        self._characters: Dict[str, CharacterInfo] = {}
        for character in characters:
            if character.id == WORLD_SENTINEL or ":" in character.id:
                raise ValueError(f"Invalid character id: {character.id!r}")
            if character.id in self._characters:
                raise ValueError(f"Duplicate character id: {character.id!r}")
            self._characters[character.id] = character

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CharacterRegistry":
        """
        Load a registry from a JSON file.

        The file holds either a list of {id, name, description} objects or a
        mapping of id -> {name, description}.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            if isinstance(raw, dict):
                raw = [{"id": key, **value} for key, value in raw.items()]
            characters = [CharacterInfo(**entry) for entry in raw]
            registry = cls(characters)
        except (OSError, json.JSONDecodeError, TypeError, ValueError, ValidationError) as e:
            raise ConfigurationError(f"Cannot load characters from {path}: {e}") from e

        logger.info(f"Loaded {len(registry)} characters from {path}")
        return registry

    def __contains__(self, character_id: object) -> bool:
        return character_id in self._characters

    def __iter__(self) -> Iterator[CharacterInfo]:
        return iter(self._characters.values())

    def __len__(self) -> int:
        return len(self._characters)

    @property
    def ids(self) -> List[str]:
        return list(self._characters)

    def get(self, character_id: str) -> CharacterInfo:
        try:
            return self._characters[character_id]
        except KeyError:
            raise UnknownCharacterError(f"Unknown character id: {character_id!r}") from None

    def validate_fact(self, fact: MemoryFact) -> MemoryFact:
        """Reject character-scoped facts owned by someone outside the table."""
        if fact.scope == "character" and fact.character_id not in self._characters:
            raise UnknownCharacterError(
                f"Fact owned by unknown character {fact.character_id!r}: '{fact.text[:50]}'"
            )
        return fact


DEFAULT_CHARACTERS = CharacterRegistry(
    [
        CharacterInfo(
            id="himuro-nigo",
            name="Nigo Himuro",
            description=(
                "A 17-year-old high school student and the strongest ability user alive, "
                "able to stop time. He wants nothing more than an ordinary life."
            ),
        ),
        CharacterInfo(
            id="genshin-tsubasa",
            name="Tsubasa Genshin",
            description=(
                "Manager of the Blue Moon cafe and an observer for the government's "
                "ability-countermeasures office, assigned to watch Nigo."
            ),
        ),
        CharacterInfo(
            id="kamishiro-rei",
            name="Rei Kamishiro",
            description=(
                "A mysterious amber-eyed woman who is trying to recruit Nigo "
                "into her organisation."
            ),
        ),
        CharacterInfo(
            id="misaki",
            name="Misaki",
            description="Nigo's younger sister.",
        ),
    ]
)
