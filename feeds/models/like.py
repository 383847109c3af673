"""Model representing a user's like on a post."""

from django.conf import settings
from django.db import models
from django.utils import timezone

from .post import Post


class Like(models.Model):
    """User like on a post; counted by the `likes` popularity metric."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        db_column='user_id',
        related_name='likes'
    )

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        db_column='post_id',
        related_name='likes'
    )

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        """Enforce one like per user/post pair."""
        db_table = "like"
        constraints = [
            models.UniqueConstraint(fields=["user", "post"], name="uniq_like_user_post"),
        ]
        indexes = [
            models.Index(fields=["post", "created_at"], name="like_post_id_1f7e3a_idx"),
        ]

    def __str__(self):
        """Readable representation for admin/debugging."""
        return f"{self.user_id} → {self.post_id}"
