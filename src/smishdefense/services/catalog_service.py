"""Service for loading and querying the message catalog."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from smishdefense.config import settings
from smishdefense.errors import CatalogLoadError
from smishdefense.models.training_models import MessageItem

logger = logging.getLogger(__name__)


def parse_catalog(raw: Any) -> List[MessageItem]:
    """Validate raw catalog data and turn it into message items."""
    if not isinstance(raw, list):
        raise CatalogLoadError("Catalog must be a list of messages")

    items: List[MessageItem] = []
    seen = set()
    for position, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise CatalogLoadError(f"Catalog entry {position} is not an object")
        try:
            item = MessageItem.from_dict(entry)
        except KeyError as e:
            raise CatalogLoadError(f"Catalog entry {position} is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise CatalogLoadError(f"Catalog entry {position} is invalid: {e}") from e
        if item.id in seen:
            raise CatalogLoadError(f"Duplicate message id {item.id} in catalog")
        seen.add(item.id)
        items.append(item)
    return items


class Catalog:
    """Loaded catalog with keyed lookups."""

    def __init__(self, items: List[MessageItem]):
        self.items = list(items)
        self._index: Dict[int, int] = {item.id: i for i, item in enumerate(self.items)}

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __getitem__(self, index: int) -> MessageItem:
        return self.items[index]

    def index_of(self, message_id: int) -> Optional[int]:
        """Position of a message in the catalog, None if it is not there."""
        return self._index.get(message_id)

    def get(self, message_id: int) -> Optional[MessageItem]:
        index = self.index_of(message_id)
        return None if index is None else self.items[index]

    def search(self, text: str = "") -> List[MessageItem]:
        """Messages whose sender or content contains text, ignoring case."""
        if not text:
            return list(self.items)
        needle = text.lower()
        return [
            item for item in self.items
            if needle in item.sender.lower() or needle in item.content.lower()
        ]


class CatalogService:
    """Loads the catalog from a JSON file or an http(s) URL."""

    def __init__(self, source: Optional[Union[str, Path]] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the service with a catalog source."""
        self.source = str(source or settings.paths.catalog_source)
        self.timeout = timeout or settings.api.timeout
        self.transport = transport

    def _is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    async def _fetch(self) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.source)
            response.raise_for_status()
            return response.json()

    def _read(self) -> Any:
        with open(self.source, encoding="utf-8") as f:
            return json.load(f)

    async def load(self) -> Catalog:
        """Load and validate the catalog; every failure becomes CatalogLoadError."""
        try:
            raw = await self._fetch() if self._is_remote() else self._read()
        except (OSError, ValueError, httpx.HTTPError) as e:
            logger.error(f"Error loading messages from {self.source}: {e}")
            raise CatalogLoadError(f"Failed to load messages from {self.source}") from e

        try:
            catalog = Catalog(parse_catalog(raw))
        except CatalogLoadError as e:
            logger.error(f"Invalid catalog at {self.source}: {e}")
            raise
        logger.info(f"Loaded {len(catalog)} messages from {self.source}")
        return catalog
