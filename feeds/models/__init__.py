from .user import User
from .post import Post, PostHashtag
from .followers import Follower
from .like import Like
from .comment import Comment
from .repost import Repost
from .feed_definition import FeedDefinition

__all__ = [
    "User",
    "Post",
    "PostHashtag",
    "Follower",
    "Like",
    "Comment",
    "Repost",
    "FeedDefinition",
]
