from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from character_memory.identity import WORLD_SENTINEL, MemoryScope, derive_vector_id


class MemoryFact(BaseModel):
    """A single atomic statement extracted from an episode."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str
    scope: MemoryScope
    character_id: Optional[str] = Field(
        default=None, alias="characterId", description="Sole owner of a character-scoped fact"
    )
    importance: int = Field(..., ge=1, le=5, description="Ranking signal only (1-5)")

    @model_validator(mode="before")
    @classmethod
    def _drop_world_owner(cls, data: Any) -> Any:
        # World facts have no owner; an id sent along with one is ignored
        if isinstance(data, dict) and data.get("scope") == "world":
            data = {k: v for k, v in data.items() if k not in ("character_id", "characterId")}
        return data

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("fact text must not be blank")
        return value

    @model_validator(mode="after")
    def _require_owner(self) -> "MemoryFact":
        if self.scope == "character" and not self.character_id:
            raise ValueError("character-scoped facts require a character_id")
        return self


class EpisodeDelta(BaseModel):
    """The facts attributable to one version of one episode."""

    model_config = ConfigDict(frozen=True)

    episode_id: str
    episode_no: int = Field(..., ge=1)
    version: int = Field(default=1, ge=1)
    facts: List[MemoryFact] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=datetime.now)

    @property
    def world_facts(self) -> List[MemoryFact]:
        return [fact for fact in self.facts if fact.scope == "world"]

    @property
    def character_facts(self) -> List[MemoryFact]:
        return [fact for fact in self.facts if fact.scope == "character"]

    def facts_for(self, character_id: str) -> List[MemoryFact]:
        """Facts visible to a character from this episode alone."""
        return [
            fact
            for fact in self.facts
            if fact.scope == "world" or fact.character_id == character_id
        ]

    def vector_ids(self) -> List[str]:
        return [
            derive_vector_id(
                self.episode_id, self.version, fact.scope, fact.character_id, index
            )
            for index, fact in enumerate(self.facts)
        ]


class MemoryVectorMetadata(BaseModel):
    """
    Metadata stored alongside each fact vector.

    Field names are serialized in camelCase and form the persisted schema;
    the retrieval filter references episodeNo, scope and characterId by name.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    vector_id: str
    episode_id: str
    episode_no: int
    version: int
    scope: MemoryScope
    character_id: str = WORLD_SENTINEL
    fact_index: int
    text: str
    importance: int

    @classmethod
    def from_fact(cls, delta: EpisodeDelta, fact: MemoryFact, fact_index: int) -> "MemoryVectorMetadata":
        return cls(
            vector_id=derive_vector_id(
                delta.episode_id, delta.version, fact.scope, fact.character_id, fact_index
            ),
            episode_id=delta.episode_id,
            episode_no=delta.episode_no,
            version=delta.version,
            scope=fact.scope,
            character_id=fact.character_id or WORLD_SENTINEL,
            fact_index=fact_index,
            text=fact.text,
            importance=fact.importance,
        )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class MemoryVectorRecord(BaseModel):
    """Embedding plus metadata, the persisted unit of the index."""

    id: str
    vector: List[float]
    metadata: MemoryVectorMetadata


class MemorySearchResult(BaseModel):
    """A record returned by a similarity query or listing."""

    id: str
    score: float = 0.0
    metadata: MemoryVectorMetadata
    vector: Optional[List[float]] = None

    @property
    def text(self) -> str:
        return self.metadata.text


class RecalledMemory(BaseModel):
    """Display shape of a recalled fact handed to the conversational layer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    episode_no: int
    importance: int
    scope: Optional[MemoryScope] = None
    character_id: Optional[str] = None
    score: Optional[float] = None

    @classmethod
    def from_search_result(
        cls,
        result: MemorySearchResult,
        include_scope: bool = False,
        include_score: bool = False,
    ) -> "RecalledMemory":
        metadata = result.metadata
        memory = cls(
            text=metadata.text,
            episode_no=metadata.episode_no,
            importance=metadata.importance,
        )
        updates: Dict[str, Any] = {}
        if include_scope:
            updates["scope"] = metadata.scope
            if metadata.scope == "character":
                updates["character_id"] = metadata.character_id
        if include_score:
            updates["score"] = result.score
        return memory.model_copy(update=updates) if updates else memory


class RecallResult(BaseModel):
    memories: List[RecalledMemory] = Field(default_factory=list)
    count: int = 0

    @classmethod
    def of(cls, memories: List[RecalledMemory]) -> "RecallResult":
        return cls(memories=memories, count=len(memories))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
