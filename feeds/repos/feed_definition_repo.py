"""Repository helpers for saved feed definitions."""

from typing import Any, Optional

from django.db.models import QuerySet

from feeds.db_accessor import DBAccessor
from feeds.models.feed_definition import FeedDefinition


class FeedDefinitionRepo(DBAccessor):
    """Repository for FeedDefinition queries."""
    def __init__(self) -> None:
        """Initialise with the FeedDefinition model."""
        super().__init__(FeedDefinition)

    def list_for_owner(self, owner_id: int) -> QuerySet:
        """Return the owner's feeds, oldest first."""
        return self.list(filters={"owner_id": owner_id}, order_by=("created_at", "id"))

    def get_by_id(self, feed_id: Any) -> Optional[FeedDefinition]:
        """Return a feed by id, or None when it does not exist."""
        return self.first(id=feed_id)

    def name_taken(self, owner_id: int, name: str, *, exclude_id: Any = None) -> bool:
        """Return True if the owner already has a feed with this name (any case)."""
        qs = self.model.objects.filter(owner_id=owner_id, name__iexact=name.strip())
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return qs.exists()

    def clear_default(self, owner_id: int, *, exclude_id: Any = None) -> int:
        """Unset is_default on the owner's feeds; return count updated."""
        qs = self.model.objects.filter(owner_id=owner_id, is_default=True)
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        return qs.update(is_default=False)
