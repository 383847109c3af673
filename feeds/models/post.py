import re

from django.conf import settings
from django.db import models
from django.utils import timezone

from feeds.blocks import POST_TYPES, normalise_tag
from feeds.utils.uuid import uuid7_or_4

"""
Post + PostHashtag models

Post:
- One item in the post store the feed engine runs against.
- `post_type` is the coarse kind used by `filter-type` blocks.
- `visibility` controls who can see the post (public / followers / private).
  Private posts are only visible to their author.
- `moderation_status` must be "approved" for the post to appear in any feed.
- `deleted_at` marks a soft delete; soft-deleted posts never appear in feeds.
- `created_at` is set explicitly (not auto_now_add) so imports and tests can
  backdate posts; it is the `sort-recent` order key.

PostHashtag:
- Membership table behind `filter-hashtag` blocks, one row per (post, tag).
- Tags are stored normalised (lower-case, no leading '#').
- Rows are added from `#tags` in the content by a post_save signal and can
  also be written directly.
"""

HASHTAG_PATTERN = re.compile(r"#(\w+)")


class Post(models.Model):
    VISIBILITY_PUBLIC = "public"
    VISIBILITY_FOLLOWERS = "followers"
    VISIBILITY_PRIVATE = "private"

    VISIBILITY_CHOICES = [
        (VISIBILITY_PUBLIC, "Public"),
        (VISIBILITY_FOLLOWERS, "Followers only"),
        (VISIBILITY_PRIVATE, "Only me"),
    ]

    MODERATION_PENDING = "pending"
    MODERATION_APPROVED = "approved"
    MODERATION_REJECTED = "rejected"

    MODERATION_CHOICES = [
        (MODERATION_PENDING, "Pending"),
        (MODERATION_APPROVED, "Approved"),
        (MODERATION_REJECTED, "Rejected"),
    ]

    TYPE_CHOICES = [(post_type, post_type.title()) for post_type in POST_TYPES]

    id = models.UUIDField(primary_key=True, default=uuid7_or_4, editable=False)

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='posts',
        db_column='author_id'
    )

    post_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="text")
    content = models.TextField(max_length=5000, blank=True, default="")

    visibility = models.CharField(
        max_length=20,
        choices=VISIBILITY_CHOICES,
        default=VISIBILITY_PUBLIC,
    )
    moderation_status = models.CharField(
        max_length=20,
        choices=MODERATION_CHOICES,
        default=MODERATION_APPROVED,
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'post'
        indexes = [
            models.Index(fields=["created_at", "id"], name="post_created_e4f5a1_idx"),
            models.Index(fields=["author"], name="post_author__0c6b3e_idx"),
            models.Index(fields=["post_type"], name="post_post_ty_7d2c90_idx"),
        ]

    def __str__(self):
        return f"{self.post_type} post by {self.author_id}"

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self):
        """Hide the post from every feed without removing the row."""
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])

    def content_hashtags(self):
        """Return normalised hashtags found in the content, in first-seen order."""
        tags = []
        for match in HASHTAG_PATTERN.findall(self.content or ""):
            tag = normalise_tag(match)
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    @property
    def tags(self):
        return sorted(hashtag.tag for hashtag in self.hashtags.all())


class PostHashtag(models.Model):
    post = models.ForeignKey(
        Post,
        related_name="hashtags",
        on_delete=models.CASCADE,
        db_column="post_id",
    )
    tag = models.CharField(max_length=100)

    class Meta:
        db_table = "post_hashtag"
        constraints = [
            models.UniqueConstraint(fields=["post", "tag"], name="uniq_post_hashtag_post_tag"),
        ]
        indexes = [
            models.Index(fields=["tag"], name="post_hashta_tag_5b1d2e_idx"),
        ]

    def save(self, *args, **kwargs):
        self.tag = normalise_tag(self.tag)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"#{self.tag} on {self.post_id}"
