from rest_framework import serializers

from feeds.models import FeedDefinition, Post


class PostSerializer(serializers.ModelSerializer):
    """Post as it appears in a feed page."""
    author = serializers.CharField(source="author.username", read_only=True)
    type = serializers.CharField(source="post_type", read_only=True)
    tags = serializers.ListField(child=serializers.CharField(), read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Post
        fields = [
            "id",
            "author",
            "type",
            "content",
            "visibility",
            "tags",
            "createdAt",
        ]
        read_only_fields = fields


class FeedDefinitionSerializer(serializers.ModelSerializer):
    """Read shape of a saved feed; blocks are the stored wire form."""
    isDefault = serializers.BooleanField(source="is_default", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = FeedDefinition
        fields = [
            "id",
            "name",
            "description",
            "blocks",
            "isDefault",
            "revision",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields


class FeedDefinitionWriteSerializer(serializers.Serializer):
    """
    Input for creating or editing a feed.

    Blocks are accepted as arbitrary JSON here; the pipeline validator
    checks them so every problem is reported with its own error code.
    """
    name = serializers.CharField(max_length=FeedDefinition.NAME_MAX_LENGTH, trim_whitespace=True)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    blocks = serializers.JSONField(required=False, default=list)
    isDefault = serializers.BooleanField(source="is_default", required=False, default=False)

    def validate_blocks(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected an array of blocks.")
        return value


class PageRequestSerializer(serializers.Serializer):
    cursor = serializers.CharField(required=False, allow_blank=False)
    limit = serializers.IntegerField(required=False, min_value=1)


class PreviewRequestSerializer(PageRequestSerializer):
    blocks = serializers.JSONField()


class FeedPageSerializer(serializers.Serializer):
    items = PostSerializer(many=True, read_only=True)
    nextCursor = serializers.CharField(source="next_cursor", allow_null=True, read_only=True)
    hasMore = serializers.BooleanField(source="has_more", read_only=True)
