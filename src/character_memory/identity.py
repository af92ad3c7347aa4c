"""
Deterministic vector identity scheme.

Every stored fact is keyed by a readable id derived only from its position
in the corpus:

    vec:{episodeId}:v{version}:{scope}:{characterId or "world"}:{factIndex}

Re-ingesting the same episode version yields the same ids, so an upsert
overwrites in place instead of duplicating. The format is the sole
deduplication key of the index and must not change without a migration.
"""

import re
from dataclasses import dataclass
from typing import Literal, Optional

MemoryScope = Literal["world", "character"]

SCOPES = ("world", "character")

# Stored in place of a character id for world-scoped facts
WORLD_SENTINEL = "world"

VECTOR_ID_PREFIX = "vec"

DEFAULT_INDEX_NAME = "character-memory"

_VECTOR_ID_PATTERN = re.compile(
    r"^vec:(?P<episode_id>[^:]+):v(?P<version>\d+):(?P<scope>world|character)"
    r":(?P<character_id>[^:]+):(?P<fact_index>\d+)$"
)


@dataclass(frozen=True)
class VectorIdentity:
    """Parsed components of a vector id."""

    episode_id: str
    version: int
    scope: MemoryScope
    character_id: Optional[str]
    fact_index: int

    @property
    def vector_id(self) -> str:
        return derive_vector_id(
            self.episode_id, self.version, self.scope, self.character_id, self.fact_index
        )


def _check_segment(name: str, value: str) -> None:
    if not value:
        raise ValueError(f"{name} must not be empty")
    if ":" in value:
        raise ValueError(f"{name} must not contain ':' (got {value!r})")


def derive_vector_id(
    episode_id: str,
    version: int,
    scope: str,
    character_id: Optional[str],
    fact_index: int,
) -> str:
    """
    Build the storage key for one fact.

    Args:
        episode_id: Stable external episode identifier
        version: Extraction version of the episode (>= 1)
        scope: "world" or "character"
        character_id: Owner of a character-scoped fact, None for world facts
        fact_index: Position of the fact within the episode's fact list

    Returns:
        The vector id string

    Raises:
        ValueError: If any component would make the id ambiguous
    """
    _check_segment("episode_id", episode_id)
    if scope not in SCOPES:
        raise ValueError(f"Unknown scope: {scope!r}")
    if version < 1:
        raise ValueError(f"version must be >= 1 (got {version})")
    if fact_index < 0:
        raise ValueError(f"fact_index must be >= 0 (got {fact_index})")

    owner = character_id or WORLD_SENTINEL
    _check_segment("character_id", owner)

    return f"{VECTOR_ID_PREFIX}:{episode_id}:v{version}:{scope}:{owner}:{fact_index}"


def parse_vector_id(vector_id: str) -> VectorIdentity:
    """
    Split a vector id back into its components.

    Raises:
        ValueError: If the id does not follow the vector id format
    """
    match = _VECTOR_ID_PATTERN.match(vector_id)
    if not match:
        raise ValueError(f"Malformed vector id: {vector_id!r}")

    scope = match.group("scope")
    character_id = match.group("character_id")
    return VectorIdentity(
        episode_id=match.group("episode_id"),
        version=int(match.group("version")),
        scope=scope,
        character_id=None if scope == "world" else character_id,
        fact_index=int(match.group("fact_index")),
    )


def get_index_name(story_id: Optional[str] = None, base: str = DEFAULT_INDEX_NAME) -> str:
    """
    Index name for a story.

    One index per story keeps unrelated narratives sharing a store apart.
    Without a story id the base index is used.
    """
    if not story_id:
        return base

    slug = re.sub(r"[^a-z0-9]+", "-", story_id.lower()).strip("-")
    if not slug:
        raise ValueError(f"story_id {story_id!r} has no usable characters for an index name")
    return f"{base}-{slug}"
