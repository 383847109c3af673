import uuid
from datetime import datetime, timedelta, timezone as dt_timezone

from feeds.models import Follower, Post, User

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=dt_timezone.utc)


def make_user(**kwargs):
    username = kwargs.pop("username", "johndoe")
    email = kwargs.pop(
        "email",
        f"{username}_{uuid.uuid4().hex[:6]}@example.org"
    )
    password = kwargs.pop("password", "Password123")

    return User.objects.create_user(
        username=username,
        email=email,
        password=password,
        first_name=kwargs.pop("first_name", "John"),
        last_name=kwargs.pop("last_name", "Doe"),
        bio=kwargs.pop("bio", "Test bio"),
        **kwargs,
    )


def make_post(
    *,
    author=None,
    post_type="text",
    content="test post",
    minutes=0,
    **extra,
):
    """
    creates and returns a post. ``minutes`` offsets created_at from BASE_TIME,
    so larger values are newer posts.
    """
    if author is None:
        author = make_user(username=f"author{uuid.uuid4().hex[:8]}")

    extra.setdefault("created_at", BASE_TIME + timedelta(minutes=minutes))
    return Post.objects.create(
        author=author,
        post_type=post_type,
        content=content,
        **extra,
    )


def follow(follower, author):
    return Follower.objects.create(follower=follower, author=author)
