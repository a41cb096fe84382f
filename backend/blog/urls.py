"""
Blog App URL Configuration
"""
from django.urls import path, register_converter
from .queries import MAX_DB_INT
from .views import (
    PostListCreateView,
    PostCreateManyView,
    MyPostsView,
    PostStatsView,
    PostDetailView,
    CommentListCreateView,
    CommentDetailView,
    CommentsByAuthorView,
    CommentStatusView,
)


class IdConverter:
    """Positive integer that fits a BigAutoField; larger ids never match (404)."""
    regex = '[0-9]{1,19}'

    def to_python(self, value):
        value = int(value)
        if value > MAX_DB_INT:
            raise ValueError(value)
        return value

    def to_url(self, value):
        return str(value)


register_converter(IdConverter, 'id')

urlpatterns = [
    # Posts
    path('posts/', PostListCreateView.as_view(), name='post-list'),
    path('posts/create-many/', PostCreateManyView.as_view(), name='post-create-many'),
    path('posts/my-posts/', MyPostsView.as_view(), name='post-mine'),
    path('posts/stats/', PostStatsView.as_view(), name='post-stats'),
    path('posts/<id:post_id>/', PostDetailView.as_view(), name='post-detail'),

    # Comments
    path('comments/', CommentListCreateView.as_view(), name='comment-list'),
    path('comments/author/<id:author_id>/', CommentsByAuthorView.as_view(), name='comment-by-author'),
    path('comments/<id:comment_id>/', CommentDetailView.as_view(), name='comment-detail'),
    path('comments/<id:comment_id>/status/', CommentStatusView.as_view(), name='comment-status'),
]
