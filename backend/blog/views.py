"""
DRF Views
=========

API endpoints for posts, comments and moderation.

Every response uses the same envelope:
    {"success": bool, "message": str, "data": ..., "meta": {...}}
Errors are shaped by exceptions.custom_exception_handler.

AUTHENTICATION NOTE:
--------------------
Sessions come from DRF authentication (token or session cookie). The role
gate lives in permissions.py; resource ownership is checked in services.py.
"""

from rest_framework import permissions, status
from rest_framework.views import APIView
from rest_framework.response import Response

from .permissions import IsAdmin, IsAuthor
from .queries import (
    COMMENT_SORT_FIELDS,
    build_pagination_and_sort,
    get_comment,
    get_comments_by_author,
    get_my_posts,
    get_post_detail,
    get_posts,
    list_comments,
    parse_comment_filters,
    parse_post_filters,
)
from .serializers import (
    CommentCreateSerializer,
    CommentCreatedSerializer,
    CommentDetailSerializer,
    CommentSerializer,
    CommentStatusSerializer,
    CommentUpdateSerializer,
    PostDetailSerializer,
    PostSerializer,
    PostWriteSerializer,
)
from . import services
from .stats import get_blog_stats


def envelope(message, data=None, meta=None, status_code=status.HTTP_200_OK):
    body = {'success': True, 'message': message}
    if meta is not None:
        body['meta'] = meta
    body['data'] = data
    return Response(body, status=status_code)


class MethodPermissionsMixin:
    """
    Per-HTTP-method permission classes.

    method_permissions = {'POST': [IsAuthor]}; methods not listed fall back
    to permission_classes.
    """
    method_permissions = {}

    def get_permissions(self):
        classes = self.method_permissions.get(self.request.method, self.permission_classes)
        return [permission() for permission in classes]


class PostListCreateView(MethodPermissionsMixin, APIView):
    """
    GET  /api/posts/  - filtered, paginated, sorted post list (public)
    POST /api/posts/  - create a post (ADMIN, USER)

    Query params: search, tags, isFeatured, status, authorId,
                  page, limit, sortBy, sortOrder

    Body (POST): title, content, thumbnail, tags (list of names), status,
                 is_featured (or isFeatured; ignored for non-admins)
    """
    permission_classes = [permissions.AllowAny]
    method_permissions = {'POST': [IsAuthor]}

    def get(self, request):
        filters = parse_post_filters(request.query_params)
        page = build_pagination_and_sort(request.query_params)

        result = get_posts(filters, page)

        return envelope(
            'Posts retrieved successfully!',
            data=PostSerializer(result['data'], many=True).data,
            meta=page.meta(result['total']),
        )

    def post(self, request):
        serializer = PostWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        post = services.create_post(serializer.validated_data, request.user)

        return envelope(
            'Post created successfully!',
            data=PostSerializer(post).data,
            status_code=status.HTTP_201_CREATED,
        )


class PostCreateManyView(APIView):
    """
    POST /api/posts/create-many/

    Body: a JSON array of post payloads. All are created or none.
    """
    permission_classes = [IsAuthor]

    def post(self, request):
        serializer = PostWriteSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)

        posts = services.create_many_posts(serializer.validated_data, request.user)

        return envelope(
            'Posts created successfully!',
            data={
                'count': len(posts),
                'posts': PostSerializer(posts, many=True).data,
            },
            status_code=status.HTTP_201_CREATED,
        )


class MyPostsView(APIView):
    """
    GET /api/posts/my-posts/

    Same filters as the post list, pinned to the requester.
    """
    permission_classes = [IsAuthor]

    def get(self, request):
        filters = parse_post_filters(request.query_params)
        page = build_pagination_and_sort(request.query_params)

        result = get_my_posts(request.user.id, filters, page)

        return envelope(
            'My posts retrieved successfully!',
            data=PostSerializer(result['data'], many=True).data,
            meta=page.meta(result['total']),
        )


class PostStatsView(APIView):
    """
    GET /api/posts/stats/  (ADMIN)
    """
    permission_classes = [IsAdmin]

    def get(self, request):
        return envelope('Post stats retrieved successfully!', data=get_blog_stats())


class PostDetailView(MethodPermissionsMixin, APIView):
    """
    GET    /api/posts/<id>/  - post + approved thread, counts one view
    PATCH  /api/posts/<id>/  - author or admin
    DELETE /api/posts/<id>/  - author or admin

    PATCH accepts the same body keys as POST /api/posts/, all optional.

    QUERY COUNT (GET): 4, inside one transaction
    1. views = views + 1
    2. Post with author and comment_count
    3. Tags
    4. All approved comments with authors and reply counts
    """
    permission_classes = [permissions.AllowAny]
    method_permissions = {
        'PATCH': [IsAuthor],
        'DELETE': [IsAuthor],
    }

    def get(self, request, post_id):
        result = get_post_detail(post_id)

        serializer = PostDetailSerializer(
            result['post'],
            context={'comment_tree': result['comments'], 'request': request}
        )
        return envelope('Post retrieved successfully!', data=serializer.data)

    def patch(self, request, post_id):
        serializer = PostWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        post = services.update_post(post_id, serializer.validated_data, request.user)

        return envelope('Post updated successfully!', data=PostSerializer(post).data)

    def delete(self, request, post_id):
        post = services.delete_post(post_id, request.user)
        return envelope('Post deleted successfully!', data=PostSerializer(post).data)


class CommentListCreateView(MethodPermissionsMixin, APIView):
    """
    GET  /api/comments/  - moderation queue (ADMIN)
    POST /api/comments/  - create a comment (ADMIN, USER)

    Body (POST):
    {
        "content": "Comment text",
        "post_id": 12,
        "parent_id": 34   // optional, for replies
    }
    postId and parentId are accepted as aliases.
    """
    permission_classes = [IsAuthor]
    method_permissions = {'GET': [IsAdmin]}

    def get(self, request):
        filters = parse_comment_filters(request.query_params)
        page = build_pagination_and_sort(request.query_params, COMMENT_SORT_FIELDS)

        result = list_comments(filters, page)

        return envelope(
            'Comments retrieved successfully!',
            data=CommentDetailSerializer(result['data'], many=True).data,
            meta=page.meta(result['total']),
        )

    def post(self, request):
        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.create_comment(
            author=request.user,
            post_id=serializer.validated_data['post_id'],
            content=serializer.validated_data['content'],
            parent_id=serializer.validated_data.get('parent_id'),
        )

        return envelope(
            'Comment created successfully!',
            data=CommentCreatedSerializer(comment).data,
            status_code=status.HTTP_201_CREATED,
        )


class CommentDetailView(MethodPermissionsMixin, APIView):
    """
    GET    /api/comments/<id>/
    PATCH  /api/comments/<id>/  - author or admin, content only
    DELETE /api/comments/<id>/  - author or admin
    """
    permission_classes = [permissions.AllowAny]
    method_permissions = {
        'PATCH': [IsAuthor],
        'DELETE': [IsAuthor],
    }

    def get(self, request, comment_id):
        comment = get_comment(comment_id)
        return envelope(
            'Comment retrieved successfully!',
            data=CommentDetailSerializer(comment).data
        )

    def patch(self, request, comment_id):
        serializer = CommentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.update_comment(comment_id, serializer.validated_data, request.user)

        return envelope('Comment updated successfully!', data=CommentSerializer(comment).data)

    def delete(self, request, comment_id):
        comment = services.delete_comment(comment_id, request.user)
        return envelope('Comment deleted successfully!', data=CommentSerializer(comment).data)


class CommentsByAuthorView(APIView):
    """
    GET /api/comments/author/<author_id>/
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, author_id):
        comments = get_comments_by_author(author_id)
        return envelope(
            'Comments retrieved successfully!',
            data=CommentDetailSerializer(comments, many=True).data
        )


class CommentStatusView(APIView):
    """
    PATCH /api/comments/<id>/status/  (ADMIN)

    Body: {"status": "PENDING" | "APPROVED" | "REJECTED"}
    """
    permission_classes = [IsAdmin]

    def patch(self, request, comment_id):
        serializer = CommentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.change_comment_status(
            comment_id,
            serializer.validated_data['status']
        )

        return envelope(
            'Comment status updated successfully!',
            data=CommentSerializer(comment).data
        )
