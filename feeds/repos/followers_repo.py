"""Repository helpers for follower relationships."""

from django.db.models import QuerySet

from feeds.db_accessor import DBAccessor
from feeds.models.followers import Follower


class FollowersRepo(DBAccessor):
    """Repository wrapper for follower relationships.

    This is the follow-membership capability the feed engine consumes: the
    default Following feed and the ``followers`` visibility rule both ask it
    who a viewer follows.
    """
    def __init__(self) -> None:
        """Initialise with the Follower model."""
        super().__init__(Follower)

    def followed_authors(self, *, follower_id: int) -> QuerySet:
        """Author ids follower_id follows, as a ``values`` queryset usable in ``__in``."""
        return self.model.objects.filter(follower_id=follower_id).values("author_id")

    def is_following(self, *, follower_id: int, author_id: int) -> bool:
        """Return True if follower_id follows author_id."""
        return self.exists(follower_id=follower_id, author_id=author_id)

    def follow(self, *, follower_id: int, author_id: int) -> Follower:
        """Create a follower relation (idempotent)."""
        relation, _ = self.model.objects.get_or_create(follower_id=follower_id, author_id=author_id)
        return relation

    def unfollow(self, *, follower_id: int, author_id: int) -> int:
        """Remove a follower relation."""
        return self.delete(follower_id=follower_id, author_id=author_id)
