"""
Statistics Aggregator
=====================

One snapshot of blog-wide counts for the admin dashboard.

QUERY STRATEGY:
---------------
Instead of eleven COUNT queries, two aggregate statements with conditional
aggregation (COUNT(...) FILTER (WHERE ...)), both in one transaction:

    SELECT COUNT(id),
           COUNT(id) FILTER (WHERE status = 'PUBLISHED'),
           ...
           COUNT(DISTINCT author_id) FILTER (WHERE profile.role = 'ADMIN'),
           SUM(views), AVG(views), MIN(views), MAX(views)
    FROM blog_post
    LEFT JOIN blog_profile ON blog_profile.user_id = blog_post.author_id;

    SELECT COUNT(id), COUNT(id) FILTER (WHERE status = 'APPROVED'), ...
    FROM blog_comment;

Each statement is a consistent snapshot on its own. Under READ COMMITTED
(the PostgreSQL default) the two statements take separate snapshots, so a
comment committed between them can show up in the comment counts while the
post counts predate it.
"""

from typing import TypedDict

from django.db import transaction
from django.db.models import Avg, Count, Max, Min, Q, Sum
from django.db.models.functions import Coalesce

from .models import Comment, Post, Profile


class PostStats(TypedDict):
    total: int
    published: int
    draft: int
    archived: int
    featured: int
    admin_authors: int
    user_authors: int


class ViewStats(TypedDict):
    total: int
    avg: float
    min: int
    max: int


class CommentStats(TypedDict):
    total: int
    pending: int
    approved: int
    rejected: int


class BlogStats(TypedDict):
    posts: PostStats
    views: ViewStats
    comments: CommentStats


def _round_avg(value) -> float:
    if value is None:
        return 0
    return round(float(value), 2)


def get_blog_stats() -> BlogStats:
    """
    Compute post, view and comment statistics.

    Every number defaults to 0 on an empty database: Coalesce covers
    SUM/MIN/MAX, _round_avg covers AVG.
    """
    with transaction.atomic():
        post_agg = Post.objects.aggregate(
            total=Count('id'),
            published=Count('id', filter=Q(status=Post.Status.PUBLISHED)),
            draft=Count('id', filter=Q(status=Post.Status.DRAFT)),
            archived=Count('id', filter=Q(status=Post.Status.ARCHIVED)),
            featured=Count('id', filter=Q(is_featured=True)),
            admin_authors=Count(
                'author',
                distinct=True,
                filter=Q(author__profile__role=Profile.Role.ADMIN)
            ),
            user_authors=Count(
                'author',
                distinct=True,
                filter=Q(author__profile__role=Profile.Role.USER)
            ),
            views_total=Coalesce(Sum('views'), 0),
            views_avg=Avg('views'),
            views_min=Coalesce(Min('views'), 0),
            views_max=Coalesce(Max('views'), 0),
        )

        comment_agg = Comment.objects.aggregate(
            total=Count('id'),
            pending=Count('id', filter=Q(status=Comment.Status.PENDING)),
            approved=Count('id', filter=Q(status=Comment.Status.APPROVED)),
            rejected=Count('id', filter=Q(status=Comment.Status.REJECTED)),
        )

    return {
        'posts': {
            'total': post_agg['total'],
            'published': post_agg['published'],
            'draft': post_agg['draft'],
            'archived': post_agg['archived'],
            'featured': post_agg['featured'],
            'admin_authors': post_agg['admin_authors'],
            'user_authors': post_agg['user_authors'],
        },
        'views': {
            'total': post_agg['views_total'],
            'avg': _round_avg(post_agg['views_avg']),
            'min': post_agg['views_min'],
            'max': post_agg['views_max'],
        },
        'comments': comment_agg,
    }
