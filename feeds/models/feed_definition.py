"""Model for a user's saved feed pipeline."""

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.db.models.functions import Lower

from feeds.utils.uuid import uuid7_or_4


class FeedDefinition(models.Model):
    """
    A named, ordered list of feed blocks owned by one user.

    `blocks` holds the wire form of the pipeline (a JSON array of tagged
    objects) in pipeline order. It is validated on every write by the
    feed definition service; the engine re-validates it before compiling.

    `revision` increases whenever the blocks change, so callers can tell
    that cursors issued for an earlier pipeline are no longer usable.
    """

    NAME_MAX_LENGTH = 100

    id = models.UUIDField(primary_key=True, default=uuid7_or_4, editable=False)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="feed_definitions",
        db_column="owner_id",
    )
    name = models.CharField(max_length=NAME_MAX_LENGTH)
    description = models.TextField(blank=True, default="")
    blocks = models.JSONField(default=list, blank=True)
    is_default = models.BooleanField(default=False)
    revision = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Names are unique per owner (case-insensitive); one default feed per owner."""
        db_table = "feed_definition"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                Lower("name"), "owner", name="uniq_feed_definition_owner_name"
            ),
            models.UniqueConstraint(
                fields=["owner"],
                condition=Q(is_default=True),
                name="uniq_feed_definition_owner_default",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.owner_id})"
