#!/usr/bin/env python3
"""
Episode ingestion script

Reads episode files named {episodeNo}.md from a directory and ingests them
into the vector index, in episode order.

Usage:
    # Ingest every episode in ./episodes
    python scripts/ingest_episodes.py --dir episodes

    # Only episode 3, as version 2 of a named story
    python scripts/ingest_episodes.py --dir episodes --episode 3 --version 2 --story blue-moon

    # Use Ollama for extraction
    python scripts/ingest_episodes.py --provider ollama --model llama3.2

Requires CHARACTER_MEMORY_QDRANT_URL (and OPENAI_API_KEY for OpenAI).
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from casual_llm import ModelConfig, Provider, create_provider
from dotenv import load_dotenv

from character_memory import CharacterMemoryError, CharacterMemoryService, IngestionResult
from character_memory.config import load_settings

load_dotenv()

logger = logging.getLogger("ingest-episodes")
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def available_episodes(episodes_dir: Path) -> List[int]:
    """Episode numbers of the {n}.md files in a directory, ascending."""
    return sorted(
        int(path.stem) for path in episodes_dir.glob("*.md") if path.stem.isdigit()
    )


def load_episode(episodes_dir: Path, episode_no: int) -> str:
    return (episodes_dir / f"{episode_no}.md").read_text(encoding="utf-8")


async def ingest(
    service: CharacterMemoryService,
    episodes_dir: Path,
    episode_nos: List[int],
    version: int,
    story_id: Optional[str],
) -> List[IngestionResult]:
    results = []
    try:
        for episode_no in episode_nos:
            logger.info(f"--- Processing Episode {episode_no} ---")
            text = load_episode(episodes_dir, episode_no)
            logger.info(f"Loaded {len(text)} characters")

            result = await service.ingest_episode(
                f"episode-{episode_no}", episode_no, text, version=version, story_id=story_id
            )
            results.append(result)
            logger.info(
                f"Extracted {result.facts_count} facts, created {len(result.vector_ids)} vectors"
            )
            for vector_id in result.vector_ids:
                logger.debug(f"  - {vector_id}")
    finally:
        await service.close()
    return results


def print_summary(results: List[IngestionResult]) -> None:
    print("\n=== Ingest Summary ===")
    for r in results:
        print(f"Episode {r.episode_no}: {r.facts_count} facts, {len(r.vector_ids)} vectors")
    total_facts = sum(r.facts_count for r in results)
    total_vectors = sum(len(r.vector_ids) for r in results)
    print(f"Total: {total_facts} facts, {total_vectors} vectors")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Ingest story episodes into character memory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dir",
        type=str,
        default="episodes",
        help="Directory holding {episodeNo}.md files (default: episodes)"
    )
    parser.add_argument(
        "--episode",
        type=int,
        default=None,
        help="Only ingest this episode number"
    )
    parser.add_argument(
        "--version",
        type=int,
        default=1,
        help="Extraction version (default: 1)"
    )
    parser.add_argument(
        "--story",
        type=str,
        default=None,
        help="Story id; selects a per-story index"
    )
    parser.add_argument(
        "--provider",
        type=str,
        default="openai",
        choices=["openai", "ollama"],
        help="LLM provider for extraction (default: openai)"
    )
    parser.add_argument(
        "--model",
        type=str,
        default="gpt-4o-mini",
        help="Extraction model name (default: gpt-4o-mini)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()
    logging.getLogger().setLevel(args.log_level)

    episodes_dir = Path(args.dir)
    if args.episode is not None:
        episode_nos = [args.episode]
    else:
        episode_nos = available_episodes(episodes_dir)
        logger.info(f"Found {len(episode_nos)} episodes: {', '.join(map(str, episode_nos))}")
    if not episode_nos:
        logger.error(f"No episodes found in {episodes_dir}")
        return 1

    provider_map = {
        "openai": Provider.OPENAI,
        "ollama": Provider.OLLAMA,
    }
    model_config = ModelConfig(
        name=args.model,
        provider=provider_map[args.provider],
        base_url=os.getenv("OLLAMA_ENDPOINT") if args.provider == "ollama" else None,
        api_key=os.getenv("OPENAI_API_KEY") if args.provider == "openai" else None,
    )

    try:
        settings = load_settings()
        service = CharacterMemoryService.from_settings(settings, create_provider(model_config))
        results = asyncio.run(ingest(service, episodes_dir, episode_nos, args.version, args.story))
    except (CharacterMemoryError, OSError) as e:
        logger.error(f"Ingestion failed: {e}", exc_info=True)
        return 1

    print_summary(results)
    return 0


if __name__ == "__main__":
    sys.exit(main())
