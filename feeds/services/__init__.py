from .privacy import PrivacyService
from .feed_definitions import FeedDefinitionService
from .feed import FeedPage, FeedService

__all__ = [
    "PrivacyService",
    "FeedDefinitionService",
    "FeedPage",
    "FeedService",
]
