"""Model for user comments on posts."""

import uuid
from django.conf import settings
from django.db import models
from django.utils import timezone

from .post import Post


class Comment(models.Model):
    """User-authored comment on a post; counted by the `comments` metric."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        db_column='post_id',
        related_name='comments'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        db_column='user_id',
        related_name='comments'
    )

    text = models.TextField(max_length=2000)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        """DB table name and lookup index for comments."""
        db_table = "comment"
        indexes = [
            models.Index(fields=["post", "created_at"], name="comment_post_id_9b4c6d_idx"),
        ]

    def __str__(self):
        """Readable identifier for admin/debugging."""
        return f"Comment by {self.user_id} on {self.post_id}"
