"""
URL configuration for the vrss project.

The feed API lives under /api/; see feeds.views.api_views.
"""
from django.urls import path

from feeds.views.api_views import (
    FeedDefinitionDetailApi,
    FeedDefinitionListApi,
    feed_posts_api,
    feed_preview_api,
    following_feed_api,
)

urlpatterns = [
    path('api/feeds/', FeedDefinitionListApi.as_view(), name='api_feeds'),
    path('api/feeds/preview/', feed_preview_api, name='api_feed_preview'),
    path('api/feeds/<uuid:feed_id>/', FeedDefinitionDetailApi.as_view(), name='api_feed_detail'),
    path('api/feeds/<uuid:feed_id>/posts/', feed_posts_api, name='api_feed_posts'),
    path('api/feed/', following_feed_api, name='api_following_feed'),
]
