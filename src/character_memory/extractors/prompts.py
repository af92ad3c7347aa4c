"""
Prompt for extracting episode facts.

The character list and the output schema keys are rendered from the
CharacterRegistry, so the prompt never carries its own copy of the ids.
"""

import json

from character_memory.characters import CharacterRegistry

EPISODE_MEMORY_PROMPT = """You are an assistant that extracts the important facts from a story episode. Character AIs will later use these facts as their memories.

## Characters
{character_list}

## Task
Read the episode text and extract the facts a character should remember from it. Sort every fact into public knowledge or private knowledge.

### 1. worldFacts (public knowledge)
Information other characters could observe or learn:
- the setting, society, news
- a character's appearance, job, public actions
- relationships as they appear on the surface
- information shared in conversation

### 2. characterFacts (private knowledge)
Information only that character knows:
- inner thoughts, true feelings, emotions
- secret identities, hidden abilities
- actions nobody else saw
- a past only they know

Deciding rule:
- Could another character see or learn it? -> worldFacts
- Does it exist only inside that character's head? -> characterFacts

### 3. Importance
- 5: the core of the story, the essence of a character
- 4: an important event or relationship
- 3: everyday but meaningful information
- 2: supporting detail
- 1: trivia

### 4. Other rules
- Write each fact as one concise sentence.
- Only include facts established as of this episode. Do not hint at future developments.
- Characters who do not appear in the episode get an empty list.

## Output
Return a single JSON object and nothing else:
{schema}
"""


def render_character_list(registry: CharacterRegistry) -> str:
    return "\n".join(
        f"- {character.id}: {character.name} - {character.description}" for character in registry
    )


def render_output_schema(registry: CharacterRegistry) -> str:
    fact = {"text": "string", "importance": "integer 1-5"}
    schema = {
        "worldFacts": [fact],
        "characterFacts": {character_id: [fact] for character_id in registry.ids},
    }
    return json.dumps(schema, indent=2, ensure_ascii=False)


def build_episode_prompt(registry: CharacterRegistry, template: str = EPISODE_MEMORY_PROMPT) -> str:
    """Render the system prompt for a character table."""
    return template.format(
        character_list=render_character_list(registry),
        schema=render_output_schema(registry),
    )
