"""Owner-only management of saved feed definitions."""

import logging
from typing import Any, List

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from feeds.exceptions import DuplicateFeedName, FeedEngineError, FeedNotFound, FeedPermissionDenied
from feeds.models import FeedDefinition
from feeds.repos.feed_definition_repo import FeedDefinitionRepo
from feeds.services.pipeline_validator import validate_or_raise

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "blocks", "is_default")


class FeedDefinitionService:
    """Create, read, edit and delete feed definitions on behalf of their owner."""

    def __init__(self, *, repo: FeedDefinitionRepo | None = None) -> None:
        self.repo = repo or FeedDefinitionRepo()

    def list_for(self, owner) -> List[FeedDefinition]:
        return list(self.repo.list_for_owner(owner.pk))

    def fetch(self, owner, feed_id: Any) -> FeedDefinition:
        """Return the feed if it exists and ``owner`` owns it."""
        try:
            feed = self.repo.get_by_id(feed_id)
        except (ValueError, DjangoValidationError):
            feed = None
        if feed is None:
            raise FeedNotFound(feed_id=str(feed_id))
        if feed.owner_id != getattr(owner, "pk", None):
            raise FeedPermissionDenied(feed_id=str(feed_id))
        return feed

    @transaction.atomic
    def create(self, owner, *, name: str, blocks=(), description: str = "", is_default: bool = False) -> FeedDefinition:
        name = self._clean_name(name)
        pipeline = validate_or_raise(list(blocks))
        if self.repo.name_taken(owner.pk, name):
            raise DuplicateFeedName(name=name)
        if is_default:
            self.repo.clear_default(owner.pk)
        try:
            feed = self.repo.create(
                owner=owner,
                name=name,
                description=description or "",
                blocks=pipeline.to_wire(),
                is_default=bool(is_default),
            )
        except IntegrityError as exc:
            raise DuplicateFeedName(name=name) from exc
        logger.info("feed %s created by user %s with %d blocks", feed.id, owner.pk, len(pipeline))
        return feed

    @transaction.atomic
    def update(self, owner, feed_id: Any, **changes: Any) -> FeedDefinition:
        """Apply a partial edit; block edits bump ``revision``."""
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise FeedEngineError(f"Cannot update field(s): {', '.join(unknown)}")
        if not changes:
            raise FeedEngineError("Nothing to update.")

        feed = self.fetch(owner, feed_id)
        if "name" in changes:
            name = self._clean_name(changes["name"])
            if self.repo.name_taken(owner.pk, name, exclude_id=feed.id):
                raise DuplicateFeedName(name=name)
            feed.name = name
        if "description" in changes:
            feed.description = changes["description"] or ""
        if "blocks" in changes:
            blocks = validate_or_raise(list(changes["blocks"] or [])).to_wire()
            if blocks != feed.blocks:
                feed.blocks = blocks
                feed.revision += 1
        if "is_default" in changes:
            if changes["is_default"]:
                self.repo.clear_default(owner.pk, exclude_id=feed.id)
            feed.is_default = bool(changes["is_default"])

        try:
            feed.save()
        except IntegrityError as exc:
            raise DuplicateFeedName(name=feed.name) from exc
        logger.info("feed %s updated by user %s (revision %d)", feed.id, owner.pk, feed.revision)
        return feed

    @transaction.atomic
    def delete(self, owner, feed_id: Any) -> None:
        feed = self.fetch(owner, feed_id)
        feed.delete()
        logger.info("feed %s deleted by user %s", feed_id, owner.pk)

    def _clean_name(self, name: Any) -> str:
        name = name.strip() if isinstance(name, str) else ""
        if not name or len(name) > FeedDefinition.NAME_MAX_LENGTH:
            raise FeedEngineError(
                f"Feed name must be 1 to {FeedDefinition.NAME_MAX_LENGTH} characters.", field="name"
            )
        return name
