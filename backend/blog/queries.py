"""
Read-side Query Strategies
==========================

This module builds every read the API performs:

1. Pagination/sort parsing        -> build_pagination_and_sort()
2. The post filter predicate      -> build_post_predicate()
3. Post listing                   -> get_posts(), get_my_posts()
4. The post detail thread         -> get_post_detail()
5. Comment reads                  -> get_comment(), get_comments_by_author(),
                                     list_comments()

THE THREAD FETCH:
-----------------
Naive approach: one query per comment level per comment (N+1 at every
level). Instead:
    Query 1: UPDATE post SET views = views + 1 WHERE id = %s
    Query 2: post + author + comment_count
    Query 3: post tags
    Query 4: every APPROVED comment of the post, with author and reply_count
Then the tree is assembled in Python with an O(n) pass, cut at
MAX_THREAD_DEPTH levels.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, F, Q, QuerySet

from .exceptions import ForbiddenError, InvalidRequest, NotFoundError
from .models import Comment, Post, Profile, MAX_THREAD_DEPTH

User = get_user_model()

# Public sort keys -> model fields
POST_SORT_FIELDS = {
    'createdAt': 'created_at',
    'created_at': 'created_at',
    'updatedAt': 'updated_at',
    'updated_at': 'updated_at',
    'title': 'title',
    'views': 'views',
    'status': 'status',
    'isFeatured': 'is_featured',
    'is_featured': 'is_featured',
}

COMMENT_SORT_FIELDS = {
    'createdAt': 'created_at',
    'created_at': 'created_at',
    'updatedAt': 'updated_at',
    'updated_at': 'updated_at',
    'status': 'status',
}

DEFAULT_POST_ORDERING = ('-created_at', '-id')
DEFAULT_COMMENT_ORDERING = ('-created_at', '-id')

# Largest value a BigAutoField id or an OFFSET can hold
MAX_DB_INT = 2 ** 63 - 1


# ============================================================================
# PAGINATION & SORT
# ============================================================================

@dataclass
class PageRequest:
    page: int
    skip: int
    take: int
    order_by: Optional[tuple] = None

    def meta(self, total: int) -> dict:
        """Envelope `meta` block for a page of `total` matching rows."""
        return {
            'total': total,
            'page': math.ceil(self.skip / self.take) + 1,
            'totalPages': math.ceil(total / self.take),
            'limit': self.take,
            'skip': self.skip,
        }


def _positive_int(raw, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


def build_pagination_and_sort(params, sort_fields=POST_SORT_FIELDS) -> PageRequest:
    """
    Translate page/limit/sortBy/sortOrder query params.

    page and limit are 1-based and fall back to 1 and BLOG_DEFAULT_PAGE_SIZE.
    Sorting only applies when both sortBy and sortOrder are present.
    """
    page = _positive_int(params.get('page'), 1)
    limit = _positive_int(params.get('limit'), settings.BLOG_DEFAULT_PAGE_SIZE)
    limit = min(limit, settings.BLOG_MAX_PAGE_SIZE)

    order_by = None
    sort_by = params.get('sortBy')
    sort_order = params.get('sortOrder')
    if sort_by and sort_order:
        if sort_by not in sort_fields:
            raise InvalidRequest(
                f"Cannot sort by '{sort_by}'",
                details={'sortBy': sorted(k for k in sort_fields if '_' not in k)}
            )
        sort_order = sort_order.lower()
        if sort_order not in ('asc', 'desc'):
            raise InvalidRequest("sortOrder must be 'asc' or 'desc'")
        column = sort_fields[sort_by]
        order_by = (column if sort_order == 'asc' else f'-{column}', '-id')

    skip = (page - 1) * limit
    if skip + limit > MAX_DB_INT:
        raise InvalidRequest('page is out of range')

    return PageRequest(page=page, skip=skip, take=limit, order_by=order_by)


def parse_id(raw, key: str) -> Optional[int]:
    """Optional positive id query param; anything outside the id range is a 400."""
    if raw is None or raw == '':
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{key} must be an integer')
    if not 1 <= value <= MAX_DB_INT:
        raise InvalidRequest(f'{key} is out of range')
    return value


# ============================================================================
# POST FILTERS
# ============================================================================

@dataclass
class PostFilters:
    search: Optional[str] = None
    tags: list = field(default_factory=list)
    is_featured: Optional[bool] = None
    status: Optional[str] = None
    author_id: Optional[int] = None


def parse_bool(raw) -> Optional[bool]:
    if raw == 'true':
        return True
    if raw == 'false':
        return False
    return None


def parse_tags(raw) -> list:
    if not raw:
        return []
    seen = []
    for tag in raw.split(','):
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def parse_post_filters(params) -> PostFilters:
    """Build PostFilters from query params (search, tags, isFeatured, status, authorId)."""
    status = params.get('status') or None
    if status and status not in Post.Status.values:
        raise InvalidRequest(
            f"Invalid post status '{status}'",
            details={'status': Post.Status.values}
        )

    author_id = parse_id(params.get('authorId'), 'authorId')

    search = (params.get('search') or '').strip() or None

    return PostFilters(
        search=search,
        tags=parse_tags(params.get('tags')),
        is_featured=parse_bool(params.get('isFeatured')),
        status=status,
        author_id=author_id,
    )


def _posts_tagged(name: str) -> QuerySet:
    """Subquery of post ids carrying tag `name`."""
    return Post.tags.through.objects.filter(tag__name=name).values('post_id')


def build_post_predicate(filters: PostFilters) -> Q:
    """
    Combine the optional filters into one predicate.

    - search: title ILIKE OR content ILIKE OR exact tag membership
    - tags: one id__in subquery per tag, so the post must carry all of them
    - is_featured / status / author_id: exact match when provided

    Each tag gets its own subquery rather than a join: a single join on
    the tag table can only ever match one tag name per row.
    """
    predicate = Q()

    if filters.search:
        predicate &= (
            Q(title__icontains=filters.search)
            | Q(content__icontains=filters.search)
            | Q(id__in=_posts_tagged(filters.search))
        )

    for tag in filters.tags:
        predicate &= Q(id__in=_posts_tagged(tag))

    if filters.is_featured is not None:
        predicate &= Q(is_featured=filters.is_featured)

    if filters.status:
        predicate &= Q(status=filters.status)

    if filters.author_id is not None:
        predicate &= Q(author_id=filters.author_id)

    return predicate


def _post_list_queryset(predicate: Q) -> QuerySet:
    return (
        Post.objects
        .filter(predicate)
        .select_related('author')
        .prefetch_related('tags')
        .annotate(comment_count=Count('comments', distinct=True))
    )


def get_posts(filters: PostFilters, page: PageRequest) -> dict:
    """
    Fetch one page of posts matching `filters`.

    Queries: 3
    - page of posts + author + comment_count
    - tags for the page (prefetch)
    - COUNT(*) under the same predicate
    """
    predicate = build_post_predicate(filters)

    queryset = _post_list_queryset(predicate).order_by(
        *(page.order_by or DEFAULT_POST_ORDERING)
    )
    data = list(queryset[page.skip:page.skip + page.take])
    total = Post.objects.filter(predicate).count()

    return {'data': data, 'total': total}


def get_my_posts(user_id: int, filters: PostFilters, page: PageRequest) -> dict:
    """Same as get_posts, pinned to `user_id`, for active users only."""
    profile = (
        Profile.objects
        .filter(user_id=user_id)
        .only('status')
        .first()
    )
    if profile is None:
        if not User.objects.filter(id=user_id).exists():
            raise NotFoundError('User not found')
        profile = Profile.objects.create(user_id=user_id)

    if profile.status != Profile.Status.ACTIVE:
        raise ForbiddenError('User is not active')

    filters.author_id = user_id
    return get_posts(filters, page)


# ============================================================================
# COMMENT THREAD
# ============================================================================

def get_approved_comments_for_post(post_id: int) -> list[Comment]:
    """
    Fetch every APPROVED comment of a post in a SINGLE query.

    reply_count counts all direct replies in storage (any status), so a
    node still reports children that the thread does not render.
    """
    return list(
        Comment.objects
        .filter(post_id=post_id, status=Comment.Status.APPROVED)
        .select_related('author')
        .annotate(reply_count=Count('replies'))
        .order_by('created_at', 'id')
    )


def build_comment_tree(flat_comments: list[Comment], max_depth: int = MAX_THREAD_DEPTH) -> list[dict]:
    """
    Build a depth-limited tree from a flat, oldest-first list.

    Algorithm: O(n) with a parent -> children map
    1. Group comments by parent_id (order inside each group stays oldest-first)
    2. Walk down from the roots, stopping at `max_depth`

    Roots come back newest-first. Comments whose parent is absent from the
    list (e.g. an approved reply under a rejected comment) are unreachable and
    dropped. Nodes at the last level carry `replies = None`: their children
    are cut off, but `reply_count` still reports them.
    """
    children: dict = {}
    for comment in flat_comments:
        children.setdefault(comment.parent_id, []).append(comment)

    def attach(comment, depth):
        node = {'comment': comment, 'depth': depth, 'replies': None}
        if depth < max_depth:
            node['replies'] = [
                attach(child, depth + 1)
                for child in children.get(comment.id, [])
            ]
        return node

    roots = list(reversed(children.get(None, [])))
    return [attach(root, 1) for root in roots]


def get_post_detail(post_id: int) -> dict:
    """
    Main entry point: post + approved thread, counting one view.

    Runs in ONE transaction. The increment comes first: it is a single
    additive UPDATE, so it takes the row lock, never loses a concurrent
    increment, and reports 0 rows when the post is gone.
    """
    with transaction.atomic():
        updated = Post.objects.filter(id=post_id).update(views=F('views') + 1)
        if not updated:
            raise NotFoundError('Post not found')

        post = (
            Post.objects
            .select_related('author')
            .prefetch_related('tags')
            .annotate(comment_count=Count('comments', distinct=True))
            .get(id=post_id)
        )
        comment_tree = build_comment_tree(get_approved_comments_for_post(post_id))

    return {'post': post, 'comments': comment_tree}


# ============================================================================
# COMMENT READS
# ============================================================================

def get_comment(comment_id: int) -> Comment:
    comment = (
        Comment.objects
        .select_related('author', 'post')
        .annotate(reply_count=Count('replies'))
        .filter(id=comment_id)
        .first()
    )
    if comment is None:
        raise NotFoundError('Comment not found')
    return comment


def get_comments_by_author(author_id: int) -> list[Comment]:
    if not User.objects.filter(id=author_id).exists():
        raise NotFoundError('Author not found')
    return list(
        Comment.objects
        .filter(author_id=author_id)
        .select_related('author', 'post')
        .annotate(reply_count=Count('replies'))
        .order_by(*DEFAULT_COMMENT_ORDERING)
    )


@dataclass
class CommentFilters:
    post_id: Optional[int] = None
    author_id: Optional[int] = None
    status: Optional[str] = None
    search: Optional[str] = None


def parse_comment_filters(params) -> CommentFilters:
    status = params.get('status') or None
    if status and status not in Comment.Status.values:
        raise InvalidRequest(
            f"Invalid comment status '{status}'",
            details={'status': Comment.Status.values}
        )

    return CommentFilters(
        post_id=parse_id(params.get('postId'), 'postId'),
        author_id=parse_id(params.get('authorId'), 'authorId'),
        status=status,
        search=(params.get('search') or '').strip() or None,
    )


def list_comments(filters: CommentFilters, page: PageRequest) -> dict:
    """Moderation queue: every comment, any status, filtered and paged."""
    predicate = Q()
    if filters.post_id is not None:
        predicate &= Q(post_id=filters.post_id)
    if filters.author_id is not None:
        predicate &= Q(author_id=filters.author_id)
    if filters.status:
        predicate &= Q(status=filters.status)
    if filters.search:
        predicate &= Q(content__icontains=filters.search)

    queryset = (
        Comment.objects
        .filter(predicate)
        .select_related('author', 'post')
        .annotate(reply_count=Count('replies'))
        .order_by(*(page.order_by or DEFAULT_COMMENT_ORDERING))
    )
    data = list(queryset[page.skip:page.skip + page.take])
    total = Comment.objects.filter(predicate).count()

    return {'data': data, 'total': total}
