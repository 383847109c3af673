"""Model representing a user re-sharing a post."""

from django.conf import settings
from django.db import models
from django.utils import timezone

from .post import Post


class Repost(models.Model):
    """A share of a post; counted by the `shares` popularity metric."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        db_column='user_id',
        related_name='reposts'
    )

    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        db_column='post_id',
        related_name='reposts'
    )

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        """One repost per user/post pair."""
        db_table = "repost"
        constraints = [
            models.UniqueConstraint(fields=["user", "post"], name="uniq_repost_user_post"),
        ]
        indexes = [
            models.Index(fields=["post", "created_at"], name="repost_post_id_4d8a2c_idx"),
        ]

    def __str__(self):
        return f"Repost of {self.post_id} by {self.user_id}"
