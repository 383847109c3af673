from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from feeds.exceptions import InvalidPageSize
from feeds.serializers import (
    FeedDefinitionSerializer,
    FeedDefinitionWriteSerializer,
    FeedPageSerializer,
    PageRequestSerializer,
    PreviewRequestSerializer,
)
from feeds.services import FeedDefinitionService, FeedService


def _page_params(serializer):
    """Return (cursor, limit) from a validated page request serializer."""
    if not serializer.is_valid():
        if "limit" in serializer.errors:
            raise InvalidPageSize(page_size=serializer.initial_data.get("limit"))
        serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return data.get("cursor"), data.get("limit")


def _page_response(page):
    return Response(FeedPageSerializer(page).data)


class FeedDefinitionListApi(APIView):
    """List the current user's feeds and create new ones."""
    permission_classes = [IsAuthenticated]
    definitions = FeedDefinitionService()

    def get(self, request):
        feeds = self.definitions.list_for(request.user)
        return Response(FeedDefinitionSerializer(feeds, many=True).data)

    def post(self, request):
        serializer = FeedDefinitionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        feed = self.definitions.create(request.user, **serializer.validated_data)
        return Response(FeedDefinitionSerializer(feed).data, status=status.HTTP_201_CREATED)


class FeedDefinitionDetailApi(APIView):
    """Retrieve, edit or delete one of the current user's feeds."""
    permission_classes = [IsAuthenticated]
    definitions = FeedDefinitionService()

    def get(self, request, feed_id):
        feed = self.definitions.fetch(request.user, feed_id)
        return Response(FeedDefinitionSerializer(feed).data)

    def put(self, request, feed_id):
        return self._update(request, feed_id, partial=False)

    def patch(self, request, feed_id):
        return self._update(request, feed_id, partial=True)

    def delete(self, request, feed_id):
        self.definitions.delete(request.user, feed_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _update(self, request, feed_id, *, partial):
        serializer = FeedDefinitionWriteSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        feed = self.definitions.update(request.user, feed_id, **serializer.validated_data)
        return Response(FeedDefinitionSerializer(feed).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def feed_posts_api(request, feed_id):
    """One page of a saved feed: ?cursor=&limit=."""
    cursor, limit = _page_params(PageRequestSerializer(data=request.query_params))
    page = FeedService().get_feed(request.user, feed_id=feed_id, cursor=cursor, page_size=limit)
    return _page_response(page)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def feed_preview_api(request):
    """One page of an unsaved pipeline: {blocks, cursor?, limit?}."""
    serializer = PreviewRequestSerializer(data=request.data)
    cursor, limit = _page_params(serializer)
    page = FeedService().get_feed(
        request.user,
        blocks=serializer.validated_data["blocks"],
        cursor=cursor,
        page_size=limit,
    )
    return _page_response(page)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def following_feed_api(request):
    """The default Following feed: newest posts from followed accounts."""
    cursor, limit = _page_params(PageRequestSerializer(data=request.query_params))
    return _page_response(FeedService().get_feed(request.user, cursor=cursor, page_size=limit))
