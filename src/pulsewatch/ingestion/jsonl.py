import json
import logging
from pathlib import Path
from typing import List

import aiofiles
from pydantic import ValidationError

from pulsewatch.core.entities import Item
from pulsewatch.ingestion.base import ItemRecord, ItemSource

logger = logging.getLogger(__name__)


class JsonlItemSource(ItemSource):
    """
    Reads one item per line from a JSON Lines file.
    """

    name = "jsonl"

    def __init__(self, path: str):
        self.path = Path(path)

    async def fetch_items(self) -> List[Item]:
        items: List[Item] = []
        skipped = 0

        line_no = 0
        async with aiofiles.open(self.path, "r", encoding="utf-8") as handle:
            async for line in handle:
                line_no += 1
                line = line.strip()
                if not line:
                    continue
                try:
                    record = ItemRecord.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    skipped += 1
                    logger.warning(f"Skipping invalid item on line {line_no} of {self.path}: {e}")
                    continue
                items.append(record.to_item())

        logger.info(f"Loaded {len(items)} items from {self.path} ({skipped} skipped)")
        return items
