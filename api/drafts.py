"""
Listing drafts prepared by a seller before publishing.

A draft lives in a DraftStore under its id until it is either consumed by
publishing or discarded; both remove it.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductDraft:
    draft_id: str
    title: str
    description: str
    category: Optional[str]
    starting_price: Decimal
    end_time: datetime
    image_paths: List[Path] = field(default_factory=list)

    def to_payload(self, image_urls: List[str]) -> dict:
        payload = {
            "title": self.title,
            "description": self.description,
            "startingPrice": str(self.starting_price),
            "endTime": self.end_time.isoformat(),
            "images": list(image_urls),
        }
        if self.category:
            payload["category"] = self.category
        return payload


class DraftStore:
    """Short-lived, explicitly scoped cache of drafts keyed by draft id."""

    def __init__(self):
        self._drafts: Dict[str, ProductDraft] = {}

    def create(
        self,
        title: str,
        description: str,
        starting_price: Decimal,
        end_time: datetime,
        category: Optional[str] = None,
        image_paths: Optional[List[Path]] = None,
    ) -> ProductDraft:
        """
        Raises:
            ValueError: If the title is blank or the starting price is not positive
        """
        if not title or not title.strip():
            raise ValueError("Title is required")
        if starting_price <= 0:
            raise ValueError("Starting price must be positive")
        draft = ProductDraft(
            draft_id=uuid.uuid4().hex,
            title=title.strip(),
            description=description,
            category=category,
            starting_price=starting_price,
            end_time=end_time,
            image_paths=[Path(p) for p in (image_paths or [])],
        )
        self._drafts[draft.draft_id] = draft
        return draft

    def get(self, draft_id: str) -> Optional[ProductDraft]:
        return self._drafts.get(draft_id)

    def consume(self, draft_id: str) -> ProductDraft:
        """
        Take a draft out of the store for publishing.

        Raises:
            KeyError: If the draft is unknown or was already consumed
        """
        return self._drafts.pop(draft_id)

    def discard(self, draft_id: str) -> bool:
        discarded = self._drafts.pop(draft_id, None) is not None
        if discarded:
            logger.debug(f"Draft {draft_id} discarded")
        return discarded

    def __len__(self) -> int:
        return len(self._drafts)
