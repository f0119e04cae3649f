import json
import logging
import re
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from pulsewatch.core.schemas import ObservationEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def extract_json(content: Optional[str]) -> str:
    """
    Extract JSON from LLM response, stripping markdown code blocks if present.
    """
    content = (content or "").strip()

    # Already valid JSON (object or bare list)
    try:
        json.loads(content)
        return content
    except json.JSONDecodeError:
        pass

    # Remove markdown code blocks (```json ... ``` or ``` ... ```)
    pattern = r'^```(?:json)?\s*\n?(.*?)\n?```$'
    match = re.match(pattern, content, re.DOTALL)
    if match:
        return match.group(1).strip()

    # Take the outermost object or list, whichever opens first
    starts = [i for i in (content.find("{"), content.find("[")) if i != -1]
    if starts:
        start = min(starts)
        end = content.rfind("}" if content[start] == "{" else "]")
        if end > start:
            return content[start:end + 1]

    return content


def parse_observations(content: Optional[str], schema: Type[T], limit: int) -> List[T]:
    """
    Parse {"observations": [...]} and validate each entry against `schema`.

    Entries that fail validation are dropped individually; an unparseable
    response yields an empty list. Returns at most `limit` observations.
    """
    clean_json = extract_json(content)

    try:
        data = json.loads(clean_json)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return []

    # Some models return the bare list
    if isinstance(data, list):
        data = {"observations": data}

    try:
        envelope = ObservationEnvelope.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Response is missing an observations list: {e}")
        return []

    results: List[T] = []
    for index, entry in enumerate(envelope.observations):
        if len(results) >= limit:
            break
        try:
            results.append(schema.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Validation failed for observation {index}: {e.error_count()} error(s)")

    return results
