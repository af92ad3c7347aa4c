"""
Ingestion message handling.

Transport-agnostic: a queue consumer (SQS, Redis streams, ...) passes each
message body to IngestHandler.handle(). Success needs no response. Any
failure is logged and re-raised so the transport applies its own retry,
backoff and dead-letter policy; the handler itself never retries.
"""

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from character_memory.errors import InvalidIngestRequest
from character_memory.pipeline import IngestionPipeline, IngestionResult

logger = logging.getLogger(__name__)

MessageBody = Union[str, bytes, Dict[str, Any]]


class IngestRequest(BaseModel):
    """{action, storyId, episodeId, episodeNo, version, text}"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["create", "update"]
    story_id: str
    episode_id: str = Field(..., min_length=1)
    episode_no: int = Field(..., ge=1)
    version: int = Field(default=1, ge=1)
    text: str

    @classmethod
    def parse(cls, body: MessageBody) -> "IngestRequest":
        try:
            data = json.loads(body) if isinstance(body, (str, bytes)) else body
            return cls.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise InvalidIngestRequest(f"Invalid ingest request: {e}") from e


class IngestHandler:
    def __init__(self, pipeline: IngestionPipeline):
        self.pipeline = pipeline

    async def handle(self, body: MessageBody) -> IngestionResult:
        started = time.monotonic()
        try:
            request = IngestRequest.parse(body)
            logger.info(
                f"Processing story: {request.story_id}, episode: {request.episode_id} "
                f"(action: {request.action}, {len(request.text)} characters)"
            )

            # create and update take the same path: ids are deterministic and
            # the pipeline purges every record of the episode it did not rewrite
            result = await self.pipeline.ingest(
                episode_id=request.episode_id,
                episode_no=request.episode_no,
                episode_text=request.text,
                version=request.version,
                story_id=request.story_id,
            )
        except Exception as e:
            logger.error(f"Failed to process ingest message: {e}")
            raise

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Ingested episode {result.episode_id}: {result.facts_count} facts, "
            f"{len(result.vector_ids)} vectors, {duration_ms:.0f}ms"
        )
        return result

    async def handle_batch(self, bodies: Iterable[MessageBody]) -> List[IngestionResult]:
        """Process messages one at a time, stopping at the first failure."""
        bodies = list(bodies)
        logger.info(f"Received {len(bodies)} records")
        return [await self.handle(body) for body in bodies]
