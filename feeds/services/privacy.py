from django.db.models import Q

from feeds.repos.followers_repo import FollowersRepo
from feeds.models.post import Post
from feeds.query_plan import (
    FIELD_AUTHOR_FOLLOWED_BY,
    FIELD_AUTHOR_ID,
    FIELD_DELETED_AT,
    FIELD_MODERATION,
    FIELD_VISIBILITY,
    OP_EQ,
    OP_IS_NULL,
    SOURCE_VISIBILITY,
    AllOf,
    AnyOf,
    Atom,
    Predicate,
)


def _viewer_id(viewer):
    if viewer is None or not getattr(viewer, "is_authenticated", False):
        return None
    return viewer.pk


def visibility_predicate(viewer) -> Predicate:
    """
    The clause every feed plan is ANDed with:

        (public OR (followers AND viewer follows author) OR author = viewer)
        AND deleted_at IS NULL AND moderation_status = approved

    Anonymous viewers only get the public branch.
    """
    viewer_id = _viewer_id(viewer)
    public = Atom(FIELD_VISIBILITY, OP_EQ, Post.VISIBILITY_PUBLIC, SOURCE_VISIBILITY)
    if viewer_id is None:
        audience = AnyOf((public,), SOURCE_VISIBILITY)
    else:
        audience = AnyOf(
            (
                public,
                AllOf(
                    (
                        Atom(FIELD_VISIBILITY, OP_EQ, Post.VISIBILITY_FOLLOWERS, SOURCE_VISIBILITY),
                        Atom(FIELD_AUTHOR_FOLLOWED_BY, OP_EQ, viewer_id, SOURCE_VISIBILITY),
                    ),
                    SOURCE_VISIBILITY,
                ),
                Atom(FIELD_AUTHOR_ID, OP_EQ, viewer_id, SOURCE_VISIBILITY),
            ),
            SOURCE_VISIBILITY,
        )
    return AllOf(
        (
            audience,
            Atom(FIELD_DELETED_AT, OP_IS_NULL, True, SOURCE_VISIBILITY),
            Atom(FIELD_MODERATION, OP_EQ, Post.MODERATION_APPROVED, SOURCE_VISIBILITY),
        ),
        SOURCE_VISIBILITY,
    )


def inject_visibility(predicate: Predicate, viewer) -> Predicate:
    """AND the visibility clause onto a compiled pipeline predicate."""
    return AllOf((predicate, visibility_predicate(viewer)), SOURCE_VISIBILITY)


class PrivacyService:
    """Single-post and queryset visibility checks outside the feed engine."""

    def __init__(self, followers=None):
        self.followers = followers or FollowersRepo()

    def is_follower(self, viewer, author):
        if not viewer or not getattr(viewer, "is_authenticated", False):
            return False
        if viewer == author:
            return True
        return self.followers.is_following(follower_id=viewer.pk, author_id=author.pk)

    def can_view_post(self, viewer, post):
        if post.deleted_at is not None or post.moderation_status != Post.MODERATION_APPROVED:
            return False

        if viewer == post.author:
            return True

        visibility = getattr(post, "visibility", Post.VISIBILITY_PUBLIC)

        if visibility == Post.VISIBILITY_PUBLIC:
            return True
        if visibility == Post.VISIBILITY_FOLLOWERS:
            return self.is_follower(viewer, post.author)
        return False

    def filter_visible_posts(self, queryset, viewer):
        live = Q(deleted_at__isnull=True, moderation_status=Post.MODERATION_APPROVED)
        if viewer and getattr(viewer, "is_authenticated", False):
            followed = self.followers.followed_authors(follower_id=viewer.pk)
            allowed = (
                Q(visibility=Post.VISIBILITY_PUBLIC)
                | Q(visibility=Post.VISIBILITY_FOLLOWERS, author_id__in=followed)
                | Q(author=viewer)
            )
            return queryset.filter(live & allowed)

        return queryset.filter(live, visibility=Post.VISIBILITY_PUBLIC)
