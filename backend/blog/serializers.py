"""
DRF Serializers
===============

Serializers handle:
1. Validation of incoming payloads (posts, comments, moderation)
2. Transformation of model instances to JSON
3. Serialization of the depth-limited comment tree

DESIGN DECISIONS:
-----------------
1. Separate serializers for reads and writes; writes only validate, the
   services in services.py do the saving
2. Tags travel as a plain list of names
3. The comment tree is pre-built by queries.build_comment_tree()
"""

from collections.abc import Mapping

from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import Post, Comment
from .queries import MAX_DB_INT

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Minimal author representation for embedding in other objects."""
    name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'name', 'email']
        read_only_fields = fields

    def get_name(self, obj):
        return obj.get_full_name() or obj.username


class KeyAliasMixin:
    """
    Accept camelCase body keys (isFeatured, postId, ...) for snake_case fields.

    The snake_case key wins when a payload sends both.
    """
    key_aliases = {}

    def to_internal_value(self, data):
        if isinstance(data, Mapping) and any(alias in data for alias in self.key_aliases):
            data = data.copy()
            for alias, name in self.key_aliases.items():
                if alias not in data:
                    continue
                if name in data:
                    del data[alias]
                elif hasattr(data, 'getlist'):
                    data.setlist(name, data.getlist(alias))
                    del data[alias]
                else:
                    data[name] = data.pop(alias)
        return super().to_internal_value(data)


class TagListField(serializers.ListField):
    """List of tag names: stripped, blanks dropped, duplicates collapsed."""
    child = serializers.CharField(max_length=50, allow_blank=True)

    def to_internal_value(self, data):
        names = super().to_internal_value(data)
        cleaned = []
        for name in names:
            name = name.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        return cleaned

    def to_representation(self, value):
        return [tag.name for tag in value.all()]


class PostSerializer(serializers.ModelSerializer):
    """
    Read serializer for posts.

    comment_count is annotated by the queries; posts that come straight from
    a write have no annotation and report None.
    """
    author = UserSerializer(read_only=True)
    tags = TagListField(read_only=True)
    comment_count = serializers.IntegerField(read_only=True, default=None)

    class Meta:
        model = Post
        fields = [
            'id',
            'title',
            'content',
            'thumbnail',
            'tags',
            'status',
            'is_featured',
            'views',
            'author',
            'comment_count',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PostWriteSerializer(KeyAliasMixin, serializers.ModelSerializer):
    """
    Validation for post create/update payloads.

    Author is set from request.user in the view, never from input.
    is_featured is accepted here; services drop it for non-admins.
    """
    key_aliases = {'isFeatured': 'is_featured'}
    tags = TagListField(required=False)

    class Meta:
        model = Post
        fields = ['title', 'content', 'thumbnail', 'tags', 'status', 'is_featured']

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be blank.")
        return value.strip()

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Content cannot be blank.")
        return value.strip()


class PostSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Post
        fields = ['id', 'title', 'views']
        read_only_fields = fields


class ParentCommentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Comment
        fields = ['id', 'content', 'author_id', 'status', 'created_at']
        read_only_fields = fields


class CommentSerializer(serializers.ModelSerializer):
    """
    Serializer for individual comments.

    NOTE: This does NOT include nested replies!
    Tree structure is handled by CommentTreeSerializer.
    """
    author = UserSerializer(read_only=True)
    reply_count = serializers.IntegerField(read_only=True, default=None)

    class Meta:
        model = Comment
        fields = [
            'id',
            'content',
            'author',
            'post_id',
            'parent_id',
            'status',
            'reply_count',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class CommentDetailSerializer(CommentSerializer):
    """Comment with its post summary, for single-comment and author views."""
    post = PostSummarySerializer(read_only=True)

    class Meta(CommentSerializer.Meta):
        fields = CommentSerializer.Meta.fields + ['post']
        read_only_fields = fields


class CommentCreatedSerializer(CommentSerializer):
    """Freshly created comment with its parent attached."""
    parent = ParentCommentSerializer(read_only=True)

    class Meta(CommentSerializer.Meta):
        fields = CommentSerializer.Meta.fields + ['parent']
        read_only_fields = fields


class CommentCreateSerializer(KeyAliasMixin, serializers.Serializer):
    """
    Payload for creating comments.

    Existence of the post/parent and the same-post rule are checked in
    services.create_comment, where they map to 404/400.
    """
    key_aliases = {'postId': 'post_id', 'parentId': 'parent_id'}
    content = serializers.CharField()
    post_id = serializers.IntegerField(min_value=1, max_value=MAX_DB_INT)
    parent_id = serializers.IntegerField(
        min_value=1, max_value=MAX_DB_INT, required=False, allow_null=True
    )

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Comment cannot be empty.")
        return value.strip()


class CommentUpdateSerializer(serializers.Serializer):
    content = serializers.CharField()

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError("Comment cannot be empty.")
        return value.strip()


class CommentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Comment.Status.choices)


class CommentTreeSerializer(serializers.Serializer):
    """
    Serializer for the depth-limited comment tree.

    This is NOT a ModelSerializer because it serializes the pre-built tree
    structure from build_comment_tree(). Each node flattens to the comment's
    own fields plus `replies`; last-level nodes have no `replies` key.
    """

    def to_representation(self, node):
        data = CommentSerializer(node['comment']).data
        if node['replies'] is not None:
            data['replies'] = CommentTreeSerializer(node['replies'], many=True).data
        return data


class PostDetailSerializer(PostSerializer):
    """
    Post with its approved comment thread.

    Comments are passed as a pre-built tree in context.
    """
    comments = serializers.SerializerMethodField()

    class Meta(PostSerializer.Meta):
        fields = PostSerializer.Meta.fields + ['comments']
        read_only_fields = fields

    def get_comments(self, obj):
        comment_tree = self.context.get('comment_tree', [])
        return CommentTreeSerializer(comment_tree, many=True).data
