"""
Tests for Inkwell

Focus areas:
1. Post filter predicate, pagination and sorting
2. Comment thread assembly (depth limit, ordering, view counter)
3. Comment creation rules
4. Authorization (author-or-admin, featured flag, role gates)
5. Statistics snapshot
6. HTTP envelope and status codes
"""

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError, connection
from django.test import TestCase, override_settings
from django.test.utils import CaptureQueriesContext
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from .exceptions import ForbiddenError, InvalidRequest, NotFoundError, custom_exception_handler
from .models import Comment, Post, Profile, Tag
from .permissions import can_mutate, is_role_allowed
from .queries import (
    PostFilters,
    build_comment_tree,
    build_pagination_and_sort,
    get_approved_comments_for_post,
    get_my_posts,
    get_post_detail,
    get_posts,
    parse_id,
    parse_post_filters,
)
from . import services
from .services import (
    change_comment_status,
    create_comment,
    create_many_posts,
    create_post,
    delete_comment,
    delete_post,
    update_comment,
    update_post,
)
from .stats import get_blog_stats

APPROVED = Comment.Status.APPROVED


def make_user(username, role=Profile.Role.USER, verified=True, status=Profile.Status.ACTIVE):
    user = User.objects.create_user(username, f'{username}@test.com', 'pass')
    Profile.objects.filter(user=user).update(role=role, email_verified=verified, status=status)
    user.refresh_from_db()
    return user


def make_post(author, title='Post', content='Some content', tags=(), **extra):
    post = Post.objects.create(author=author, title=title, content=content, **extra)
    if tags:
        post.tags.set([Tag.objects.get_or_create(name=name)[0] for name in tags])
    return post


def page(page=1, limit=5, **sort):
    params = {'page': str(page), 'limit': str(limit), **sort}
    return build_pagination_and_sort(params)


class PostFilterTestCase(TestCase):
    """
    Test the post filter predicate.

    CRITICAL: tags is a superset match, search ORs title/content/tag.
    """

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')

        self.p1 = make_post(self.alice, title='Django tips', tags=['python', 'django'])
        self.p2 = make_post(self.alice, title='Flask notes', content='About FOO bars', tags=['python'])
        self.p3 = make_post(self.bob, title='Rust intro', tags=['rust', 'foo'], is_featured=True)
        self.p4 = make_post(self.bob, title='Drafted', tags=['python', 'django', 'orm'],
                            status=Post.Status.DRAFT)

    def ids(self, filters, **page_kwargs):
        return {post.id for post in get_posts(filters, page(limit=50, **page_kwargs))['data']}

    def test_no_filters_returns_everything(self):
        result = get_posts(PostFilters(), page(limit=50))
        self.assertEqual(result['total'], 4)

    def test_tags_require_every_tag(self):
        """Only posts carrying BOTH tags match."""
        self.assertEqual(
            self.ids(PostFilters(tags=['python', 'django'])),
            {self.p1.id, self.p4.id}
        )

    def test_single_tag(self):
        self.assertEqual(
            self.ids(PostFilters(tags=['python'])),
            {self.p1.id, self.p2.id, self.p4.id}
        )

    def test_unknown_tag_matches_nothing(self):
        self.assertEqual(self.ids(PostFilters(tags=['python', 'haskell'])), set())

    def test_search_matches_title_content_or_tag(self):
        """'foo' is in p2's content (different case) and p3's tags."""
        self.assertEqual(self.ids(PostFilters(search='foo')), {self.p2.id, self.p3.id})

    def test_search_is_case_insensitive_on_title(self):
        self.assertEqual(self.ids(PostFilters(search='DJANGO')), {self.p1.id})

    def test_search_tag_match_does_not_duplicate_rows(self):
        make_post(self.alice, title='foo foo', content='foo', tags=['foo'])
        result = get_posts(PostFilters(search='foo'), page(limit=50))
        self.assertEqual(result['total'], 3)
        self.assertEqual(len(result['data']), 3)

    def test_exact_match_filters(self):
        self.assertEqual(self.ids(PostFilters(is_featured=True)), {self.p3.id})
        self.assertEqual(self.ids(PostFilters(status=Post.Status.DRAFT)), {self.p4.id})
        self.assertEqual(self.ids(PostFilters(author_id=self.bob.id)), {self.p3.id, self.p4.id})

    def test_filters_combine_with_and(self):
        filters = PostFilters(tags=['python'], author_id=self.alice.id, search='notes')
        self.assertEqual(self.ids(filters), {self.p2.id})

    def test_total_ignores_pagination(self):
        result = get_posts(PostFilters(tags=['python']), page(page=2, limit=2))
        self.assertEqual(result['total'], 3)
        self.assertEqual(len(result['data']), 1)

    def test_sorting(self):
        Post.objects.filter(id=self.p1.id).update(views=30)
        Post.objects.filter(id=self.p2.id).update(views=10)
        Post.objects.filter(id=self.p3.id).update(views=20)
        Post.objects.filter(id=self.p4.id).update(views=0)

        result = get_posts(PostFilters(), page(limit=50, sortBy='views', sortOrder='desc'))
        self.assertEqual(
            [p.id for p in result['data']],
            [self.p1.id, self.p3.id, self.p2.id, self.p4.id]
        )

    def test_comment_count_is_annotated(self):
        Comment.objects.create(post=self.p1, author=self.bob, content='one')
        Comment.objects.create(post=self.p1, author=self.bob, content='two')
        result = get_posts(PostFilters(author_id=self.alice.id), page(limit=50))
        counts = {post.id: post.comment_count for post in result['data']}
        self.assertEqual(counts[self.p1.id], 2)
        self.assertEqual(counts[self.p2.id], 0)

    def test_parse_post_filters(self):
        filters = parse_post_filters({
            'search': ' foo ',
            'tags': 'a, b,,a',
            'isFeatured': 'false',
            'status': 'PUBLISHED',
            'authorId': '7',
        })
        self.assertEqual(filters.search, 'foo')
        self.assertEqual(filters.tags, ['a', 'b'])
        self.assertIs(filters.is_featured, False)
        self.assertEqual(filters.status, 'PUBLISHED')
        self.assertEqual(filters.author_id, 7)

        self.assertIsNone(parse_post_filters({'isFeatured': 'yes'}).is_featured)

    def test_parse_post_filters_rejects_bad_values(self):
        with self.assertRaises(InvalidRequest):
            parse_post_filters({'status': 'LIVE'})
        with self.assertRaises(InvalidRequest):
            parse_post_filters({'authorId': 'abc'})

    def test_my_posts_pinned_to_user(self):
        result = get_my_posts(self.alice.id, PostFilters(author_id=self.bob.id), page(limit=50))
        self.assertEqual({p.id for p in result['data']}, {self.p1.id, self.p2.id})

    def test_my_posts_requires_active_user(self):
        Profile.objects.filter(user=self.alice).update(status=Profile.Status.BLOCKED)
        with self.assertRaises(ForbiddenError):
            get_my_posts(self.alice.id, PostFilters(), page())

    def test_my_posts_unknown_user(self):
        with self.assertRaises(NotFoundError):
            get_my_posts(99999, PostFilters(), page())


class PaginationTestCase(TestCase):

    def test_defaults(self):
        request = build_pagination_and_sort({})
        self.assertEqual((request.page, request.skip, request.take), (1, 0, 5))
        self.assertIsNone(request.order_by)

    def test_skip_from_page_and_limit(self):
        request = page(page=3, limit=10)
        self.assertEqual(request.skip, 20)
        self.assertEqual(request.take, 10)

    def test_invalid_values_fall_back(self):
        request = build_pagination_and_sort({'page': '-2', 'limit': 'abc'})
        self.assertEqual((request.page, request.take), (1, 5))

    def test_limit_is_capped(self):
        self.assertEqual(page(limit=1000).take, 100)

    def test_sort_needs_both_params(self):
        self.assertIsNone(build_pagination_and_sort({'sortBy': 'views'}).order_by)

    def test_sort_translation(self):
        request = build_pagination_and_sort({'sortBy': 'createdAt', 'sortOrder': 'asc'})
        self.assertEqual(request.order_by, ('created_at', '-id'))

    def test_unknown_sort_field(self):
        with self.assertRaises(InvalidRequest):
            build_pagination_and_sort({'sortBy': 'password', 'sortOrder': 'asc'})
        with self.assertRaises(InvalidRequest):
            build_pagination_and_sort({'sortBy': 'views', 'sortOrder': 'sideways'})

    def test_page_beyond_offset_range(self):
        with self.assertRaises(InvalidRequest):
            build_pagination_and_sort({'page': '99999999999999999999'})
        # The last page whose OFFSET still fits is accepted
        last = (2 ** 63 - 1) // 5
        self.assertEqual(build_pagination_and_sort({'page': str(last)}).page, last)

    def test_parse_id(self):
        self.assertIsNone(parse_id(None, 'postId'))
        self.assertIsNone(parse_id('', 'postId'))
        self.assertEqual(parse_id('42', 'postId'), 42)
        self.assertEqual(parse_id(str(2 ** 63 - 1), 'postId'), 2 ** 63 - 1)
        for raw in ('abc', '0', '-3', str(2 ** 63)):
            with self.assertRaises(InvalidRequest):
                parse_id(raw, 'postId')

    def test_meta(self):
        meta = page(page=2, limit=5).meta(12)
        self.assertEqual(meta, {'total': 12, 'page': 2, 'totalPages': 3, 'limit': 5, 'skip': 5})
        self.assertEqual(page().meta(0)['totalPages'], 0)


class CommentTreeTestCase(TestCase):
    """
    Test the depth-limited thread.

    CRITICAL: three levels, approved only, view counter +1 per fetch.
    """

    def setUp(self):
        self.user = make_user('user')
        self.post = make_post(self.user, title='Thread')
        self.now = timezone.now()

    def comment(self, minutes, parent=None, status=APPROVED, content='c'):
        return Comment.objects.create(
            post=self.post,
            author=self.user,
            parent=parent,
            content=content,
            status=status,
            created_at=self.now + timedelta(minutes=minutes),
        )

    def tree(self):
        return build_comment_tree(get_approved_comments_for_post(self.post.id))

    def test_roots_newest_first_replies_oldest_first(self):
        old_root = self.comment(0)
        new_root = self.comment(10)
        late_reply = self.comment(5, parent=old_root)
        early_reply = self.comment(1, parent=old_root)

        tree = self.tree()

        self.assertEqual([n['comment'].id for n in tree], [new_root.id, old_root.id])
        self.assertEqual(
            [n['comment'].id for n in tree[1]['replies']],
            [early_reply.id, late_reply.id]
        )

    def test_tree_stops_at_three_levels(self):
        """Level 4 exists in storage but is not rendered."""
        c1 = self.comment(0)
        c2 = self.comment(1, parent=c1)
        c3 = self.comment(2, parent=c2)
        self.comment(3, parent=c3)

        tree = self.tree()

        level1 = tree[0]
        level2 = level1['replies'][0]
        level3 = level2['replies'][0]
        self.assertEqual(level3['comment'].id, c3.id)
        self.assertIsNone(level3['replies'])
        # The cut-off child is still counted
        self.assertEqual(level3['comment'].reply_count, 1)

    def test_only_approved_comments_are_rendered(self):
        root = self.comment(0)
        self.comment(1, parent=root, status=Comment.Status.PENDING)
        self.comment(2, parent=root, status=Comment.Status.REJECTED)
        visible = self.comment(3, parent=root)
        self.comment(4, status=Comment.Status.PENDING)

        tree = self.tree()

        self.assertEqual(len(tree), 1)
        self.assertEqual([n['comment'].id for n in tree[0]['replies']], [visible.id])
        # reply_count reports every stored child
        self.assertEqual(tree[0]['comment'].reply_count, 3)

    def test_approved_reply_under_rejected_parent_is_hidden(self):
        rejected = self.comment(0, status=Comment.Status.REJECTED)
        self.comment(1, parent=rejected)

        self.assertEqual(self.tree(), [])

    def test_detail_increments_views_each_fetch(self):
        root = self.comment(0)
        self.comment(1, parent=root)

        first = get_post_detail(self.post.id)
        second = get_post_detail(self.post.id)

        self.assertEqual(first['post'].views, 1)
        self.assertEqual(second['post'].views, 2)
        self.post.refresh_from_db()
        self.assertEqual(self.post.views, 2)

        # Same tree content on both fetches
        def shape(nodes):
            return [(n['comment'].id, shape(n['replies'] or [])) for n in nodes]
        self.assertEqual(shape(first['comments']), shape(second['comments']))

    def test_detail_missing_post(self):
        with self.assertRaises(NotFoundError):
            get_post_detail(99999)

    def test_detail_query_count_is_constant(self):
        """Fetching 5 or 40 comments costs the same number of queries."""
        for i in range(5):
            self.comment(i)
        with CaptureQueriesContext(connection) as small:
            get_post_detail(self.post.id)

        root = self.comment(100)
        for i in range(35):
            self.comment(101 + i, parent=root)
        with CaptureQueriesContext(connection) as large:
            result = get_post_detail(self.post.id)

        self.assertEqual(len(small), len(large))
        self.assertEqual(len(result['comments']), 6)


class CommentServiceTestCase(TestCase):

    def setUp(self):
        self.author = make_user('author')
        self.other = make_user('other')
        self.admin = make_user('admin', role=Profile.Role.ADMIN)
        self.post = make_post(self.author)
        self.other_post = make_post(self.author, title='Other')

    def test_create_comment_defaults_to_pending(self):
        comment = create_comment(self.other, self.post.id, 'Nice post')
        self.assertEqual(comment.status, Comment.Status.PENDING)
        self.assertIsNone(comment.parent)

    def test_create_reply_attaches_parent(self):
        parent = create_comment(self.other, self.post.id, 'Parent')
        reply = create_comment(self.author, self.post.id, 'Reply', parent_id=parent.id)
        self.assertEqual(reply.parent, parent)

    def test_missing_post(self):
        with self.assertRaises(NotFoundError):
            create_comment(self.other, 99999, 'Hello')
        self.assertEqual(Comment.objects.count(), 0)

    def test_missing_parent(self):
        with self.assertRaises(NotFoundError):
            create_comment(self.other, self.post.id, 'Hello', parent_id=99999)
        self.assertEqual(Comment.objects.count(), 0)

    def test_parent_on_other_post(self):
        parent = create_comment(self.other, self.other_post.id, 'Elsewhere')
        with self.assertRaises(InvalidRequest):
            create_comment(self.other, self.post.id, 'Hello', parent_id=parent.id)
        self.assertEqual(Comment.objects.count(), 1)

    def test_update_by_author_and_admin(self):
        comment = create_comment(self.other, self.post.id, 'First')
        update_comment(comment.id, {'content': 'Edited'}, self.other)
        update_comment(comment.id, {'content': 'Moderated'}, self.admin)
        comment.refresh_from_db()
        self.assertEqual(comment.content, 'Moderated')

    def test_update_by_stranger_is_forbidden(self):
        comment = create_comment(self.other, self.post.id, 'First')
        with self.assertRaises(ForbiddenError):
            update_comment(comment.id, {'content': 'Hijacked'}, self.author)
        comment.refresh_from_db()
        self.assertEqual(comment.content, 'First')

    def test_delete_cascades_replies(self):
        parent = create_comment(self.other, self.post.id, 'Parent')
        create_comment(self.author, self.post.id, 'Reply', parent_id=parent.id)

        with self.assertRaises(ForbiddenError):
            delete_comment(parent.id, self.author)

        deleted = delete_comment(parent.id, self.other)
        self.assertEqual(deleted.id, parent.id)
        self.assertEqual(Comment.objects.count(), 0)

    def test_change_status(self):
        comment = create_comment(self.other, self.post.id, 'Hello')
        change_comment_status(comment.id, Comment.Status.APPROVED)
        comment.refresh_from_db()
        self.assertEqual(comment.status, Comment.Status.APPROVED)

        with self.assertRaises(InvalidRequest):
            change_comment_status(comment.id, 'SPAM')
        with self.assertRaises(NotFoundError):
            change_comment_status(99999, Comment.Status.APPROVED)


class AuthorizationTestCase(TestCase):
    """
    Test author-or-admin rules on posts.
    """

    def setUp(self):
        self.author = make_user('author')
        self.stranger = make_user('stranger')
        self.admin = make_user('admin', role=Profile.Role.ADMIN)
        self.post = make_post(self.author, title='Original', tags=['a'])

    def test_pure_checks(self):
        self.assertTrue(can_mutate(1, 1, Profile.Role.USER))
        self.assertTrue(can_mutate(1, 2, Profile.Role.ADMIN))
        self.assertFalse(can_mutate(1, 2, Profile.Role.USER))

        self.assertTrue(is_role_allowed([], 'USER'))
        self.assertTrue(is_role_allowed(['ADMIN', 'USER'], 'USER'))
        self.assertFalse(is_role_allowed(['ADMIN'], 'USER'))
        self.assertFalse(is_role_allowed(['ADMIN'], None))

    def test_stranger_cannot_update(self):
        with self.assertRaises(ForbiddenError):
            update_post(self.post.id, {'title': 'Hacked'}, self.stranger)
        self.post.refresh_from_db()
        self.assertEqual(self.post.title, 'Original')

    def test_stranger_cannot_delete(self):
        with self.assertRaises(ForbiddenError):
            delete_post(self.post.id, self.stranger)
        self.assertTrue(Post.objects.filter(id=self.post.id).exists())

    def test_author_featured_flag_is_dropped(self):
        post = update_post(self.post.id, {'title': 'Renamed', 'is_featured': True}, self.author)
        self.assertEqual(post.title, 'Renamed')
        self.assertFalse(post.is_featured)

    def test_admin_can_feature(self):
        post = update_post(self.post.id, {'is_featured': True}, self.admin)
        self.assertTrue(post.is_featured)

    def test_tags_replace_set(self):
        post = update_post(self.post.id, {'tags': ['b', 'c']}, self.author)
        self.assertEqual(sorted(t.name for t in post.tags.all()), ['b', 'c'])

    def test_empty_update(self):
        with self.assertRaises(InvalidRequest):
            update_post(self.post.id, {}, self.author)

    def test_missing_post(self):
        with self.assertRaises(NotFoundError):
            update_post(99999, {'title': 'x'}, self.admin)
        with self.assertRaises(NotFoundError):
            delete_post(99999, self.admin)

    def test_admin_can_delete(self):
        deleted = delete_post(self.post.id, self.admin)
        self.assertEqual(deleted.id, self.post.id)
        self.assertFalse(Post.objects.filter(id=self.post.id).exists())

    def test_create_drops_featured_for_users(self):
        post = create_post({'title': 'T', 'content': 'C', 'is_featured': True}, self.author)
        self.assertFalse(post.is_featured)
        post = create_post({'title': 'T', 'content': 'C', 'is_featured': True}, self.admin)
        self.assertTrue(post.is_featured)

    def test_create_many(self):
        payloads = [
            {'title': 'One', 'content': 'C', 'tags': ['x']},
            {'title': 'Two', 'content': 'C'},
        ]
        posts = create_many_posts(payloads, self.author)
        self.assertEqual(len(posts), 2)
        self.assertTrue(all(p.author_id == self.author.id for p in posts))

        with self.assertRaises(InvalidRequest):
            create_many_posts([], self.author)

    def test_create_many_rolls_back_on_failure(self):
        """A failure on the second payload leaves no post and no tag behind."""
        posts_before = Post.objects.count()
        real_create = services._create_post
        calls = []

        def fail_on_second(data, author, is_admin):
            calls.append(data)
            if len(calls) == 2:
                raise RuntimeError('write failed')
            return real_create(data, author, is_admin)

        payloads = [
            {'title': 'One', 'content': 'C', 'tags': ['fresh-tag']},
            {'title': 'Two', 'content': 'C'},
            {'title': 'Three', 'content': 'C'},
        ]
        with patch('blog.services._create_post', side_effect=fail_on_second):
            with self.assertRaises(RuntimeError):
                create_many_posts(payloads, self.author)

        self.assertEqual(len(calls), 2)
        self.assertEqual(Post.objects.count(), posts_before)
        self.assertFalse(Tag.objects.filter(name='fresh-tag').exists())


class StatsTestCase(TestCase):

    def test_empty_database(self):
        stats = get_blog_stats()
        self.assertEqual(stats['posts'], {
            'total': 0, 'published': 0, 'draft': 0, 'archived': 0,
            'featured': 0, 'admin_authors': 0, 'user_authors': 0,
        })
        self.assertEqual(stats['views'], {'total': 0, 'avg': 0, 'min': 0, 'max': 0})
        self.assertEqual(stats['comments'], {'total': 0, 'pending': 0, 'approved': 0, 'rejected': 0})

    def test_populated_database(self):
        admin = make_user('admin', role=Profile.Role.ADMIN)
        alice = make_user('alice')
        bob = make_user('bob')

        p1 = make_post(admin, views=10, is_featured=True)
        make_post(alice, views=3, status=Post.Status.DRAFT)
        make_post(alice, views=0, status=Post.Status.ARCHIVED)
        make_post(bob, views=1)

        Comment.objects.create(post=p1, author=bob, content='a')
        Comment.objects.create(post=p1, author=bob, content='b', status=APPROVED)
        Comment.objects.create(post=p1, author=bob, content='c', status=Comment.Status.REJECTED)

        stats = get_blog_stats()

        self.assertEqual(stats['posts']['total'], 4)
        self.assertEqual(stats['posts']['published'], 2)
        self.assertEqual(stats['posts']['draft'], 1)
        self.assertEqual(stats['posts']['archived'], 1)
        self.assertEqual(stats['posts']['featured'], 1)
        self.assertEqual(stats['posts']['admin_authors'], 1)
        self.assertEqual(stats['posts']['user_authors'], 2)
        self.assertEqual(stats['views'], {'total': 14, 'avg': 3.5, 'min': 0, 'max': 10})
        self.assertEqual(stats['comments'], {'total': 3, 'pending': 1, 'approved': 1, 'rejected': 1})

    def test_average_is_rounded(self):
        user = make_user('user')
        for views in (1, 1, 2):
            make_post(user, views=views)
        self.assertEqual(get_blog_stats()['views']['avg'], 1.33)


class PostApiTestCase(APITestCase):
    """
    HTTP surface: envelope, status codes and the listed scenarios.
    """

    def setUp(self):
        self.user = make_user('writer')
        self.admin = make_user('boss', role=Profile.Role.ADMIN)

    def test_create_requires_session(self):
        response = self.client.post(reverse('post-list'), {'title': 'T', 'content': 'C'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_unverified_email_is_forbidden(self):
        unverified = make_user('fresh', verified=False)
        self.client.force_authenticate(user=unverified)
        response = self.client.post(reverse('post-list'), {'title': 'T', 'content': 'C'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['message'], 'Forbidden: Email not verified!')

    def test_role_gate(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('post-stats'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('post-stats'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['posts']['total'], 0)

    def test_create_post(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(
            reverse('post-list'),
            {'title': 'Hello', 'content': 'World', 'tags': ['intro', 'intro', ' meta ']},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['author']['id'], self.user.id)
        self.assertEqual(sorted(response.data['data']['tags']), ['intro', 'meta'])

    def test_create_post_validation_error(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(reverse('post-list'), {'title': ''}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Validation Error')
        self.assertIn('content', response.data['error'])

    def test_create_many(self):
        """3 payloads -> 201 and exactly 3 posts owned by the requester."""
        self.client.force_authenticate(user=self.user)
        payload = [
            {'title': f'Post {i}', 'content': f'Body {i}', 'tags': ['batch']}
            for i in range(3)
        ]
        response = self.client.post(reverse('post-create-many'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['count'], 3)
        self.assertEqual(Post.objects.filter(author=self.user).count(), 3)
        self.assertEqual(Post.objects.count(), 3)

    def test_list_pagination(self):
        """12 posts, page 2 of 5 -> 5 items, total 12, 3 pages."""
        for i in range(12):
            make_post(self.user, title=f'Post {i}')

        response = self.client.get(reverse('post-list'), {'page': 2, 'limit': 5})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 5)
        self.assertEqual(response.data['meta']['total'], 12)
        self.assertEqual(response.data['meta']['totalPages'], 3)
        self.assertEqual(response.data['meta']['page'], 2)
        self.assertEqual(response.data['meta']['skip'], 5)

    def test_list_filters_from_query_string(self):
        make_post(self.user, title='Tagged', tags=['a', 'b'])
        make_post(self.user, title='Half', tags=['a'])

        response = self.client.get(reverse('post-list'), {'tags': 'a,b'})
        self.assertEqual([p['title'] for p in response.data['data']], ['Tagged'])

    def test_list_rejects_bad_sort(self):
        response = self.client.get(reverse('post-list'), {'sortBy': 'secret', 'sortOrder': 'asc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_list_rejects_oversized_numbers(self):
        make_post(self.user, title='Any')

        response = self.client.get(reverse('post-list'), {'page': '99999999999999999999'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'page is out of range')

        response = self.client.get(reverse('post-list'), {'authorId': '99999999999999999999'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'authorId is out of range')

    def test_detail_with_oversized_id_is_not_found(self):
        response = self.client.get('/api/posts/99999999999999999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_camel_case_featured_key(self):
        post = make_post(self.user, title='Promote me')
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            reverse('post-detail', args=[post.id]), {'isFeatured': True}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['is_featured'])
        post.refresh_from_db()
        self.assertTrue(post.is_featured)

    def test_my_posts(self):
        make_post(self.user, title='Mine')
        make_post(self.admin, title='Theirs')
        self.client.force_authenticate(user=self.user)

        response = self.client.get(reverse('post-mine'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['title'] for p in response.data['data']], ['Mine'])

    def test_detail_counts_views_and_nests_comments(self):
        post = make_post(self.user, title='Detail')
        root = Comment.objects.create(post=post, author=self.admin, content='root', status=APPROVED)
        Comment.objects.create(post=post, author=self.user, content='reply', parent=root, status=APPROVED)

        url = reverse('post-detail', args=[post.id])
        first = self.client.get(url)
        second = self.client.get(url)

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['data']['views'], 1)
        self.assertEqual(second.data['data']['views'], 2)
        comments = first.data['data']['comments']
        self.assertEqual(comments[0]['content'], 'root')
        self.assertEqual(comments[0]['reply_count'], 1)
        self.assertEqual(comments[0]['replies'][0]['content'], 'reply')

    def test_detail_not_found(self):
        response = self.client.get(reverse('post-detail', args=[99999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data, {'success': False, 'message': 'Post not found', 'error': None})

    def test_non_admin_featured_update_is_silently_dropped(self):
        post = make_post(self.user, title='Plain')
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(
            reverse('post-detail', args=[post.id]),
            {'title': 'Still plain', 'is_featured': True},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        post.refresh_from_db()
        self.assertEqual(post.title, 'Still plain')
        self.assertFalse(post.is_featured)

    def test_non_author_update_and_delete(self):
        post = make_post(self.admin, title='Admin post')
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(reverse('post-detail', args=[post.id]), {'title': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.delete(reverse('post-detail', args=[post.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        post.refresh_from_db()
        self.assertEqual(post.title, 'Admin post')

    def test_delete_post(self):
        post = make_post(self.user, title='Bye', tags=['gone'])
        self.client.force_authenticate(user=self.user)

        response = self.client.delete(reverse('post-detail', args=[post.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['id'], post.id)
        self.assertEqual(response.data['data']['tags'], ['gone'])
        self.assertFalse(Post.objects.filter(id=post.id).exists())


class CommentApiTestCase(APITestCase):

    def setUp(self):
        self.user = make_user('commenter')
        self.admin = make_user('moderator', role=Profile.Role.ADMIN)
        self.post = make_post(self.admin, title='Discuss')

    def test_create_comment(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(
            reverse('comment-list'),
            {'content': 'First!', 'post_id': self.post.id},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], Comment.Status.PENDING)
        self.assertIsNone(response.data['data']['parent'])

    def test_create_reply_with_parent(self):
        parent = Comment.objects.create(post=self.post, author=self.admin, content='Parent')
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            reverse('comment-list'),
            {'content': 'Reply', 'post_id': self.post.id, 'parent_id': parent.id},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['parent']['id'], parent.id)

    def test_create_reply_with_camel_case_keys(self):
        parent = Comment.objects.create(post=self.post, author=self.admin, content='Parent')
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            reverse('comment-list'),
            {'content': 'Reply', 'postId': self.post.id, 'parentId': parent.id},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['post_id'], self.post.id)
        self.assertEqual(response.data['data']['parent']['id'], parent.id)

    def test_oversized_ids_are_rejected(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(
            reverse('comment-list'),
            {'content': 'x', 'post_id': 2 ** 64},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('post_id', response.data['error'])

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('comment-list'), {'postId': '99999999999999999999'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'postId is out of range')

    def test_create_comment_errors(self):
        other_post = make_post(self.admin, title='Elsewhere')
        foreign_parent = Comment.objects.create(post=other_post, author=self.admin, content='x')
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            reverse('comment-list'), {'content': 'x', 'post_id': 99999}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(
            reverse('comment-list'),
            {'content': 'x', 'post_id': self.post.id, 'parent_id': foreign_parent.id},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Comment.objects.filter(author=self.user).count(), 0)

    def test_get_comment_and_by_author(self):
        comment = Comment.objects.create(post=self.post, author=self.user, content='Mine')

        response = self.client.get(reverse('comment-detail', args=[comment.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['post']['id'], self.post.id)

        response = self.client.get(reverse('comment-by-author', args=[self.user.id]))
        self.assertEqual([c['id'] for c in response.data['data']], [comment.id])

        response = self.client.get(reverse('comment-by-author', args=[99999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_and_delete_own_comment(self):
        comment = Comment.objects.create(post=self.post, author=self.user, content='Typo')
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(
            reverse('comment-detail', args=[comment.id]), {'content': 'Fixed'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['content'], 'Fixed')

        response = self.client.delete(reverse('comment-detail', args=[comment.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Comment.objects.filter(id=comment.id).exists())

    def test_status_change_is_admin_only(self):
        comment = Comment.objects.create(post=self.post, author=self.user, content='Hello')
        url = reverse('comment-status', args=[comment.id])

        self.client.force_authenticate(user=self.user)
        response = self.client.patch(url, {'status': 'APPROVED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.patch(url, {'status': 'NOPE'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.patch(url, {'status': 'APPROVED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        comment.refresh_from_db()
        self.assertEqual(comment.status, Comment.Status.APPROVED)

    def test_moderation_queue(self):
        Comment.objects.create(post=self.post, author=self.user, content='waiting')
        Comment.objects.create(post=self.post, author=self.user, content='ok', status=APPROVED)

        self.client.force_authenticate(user=self.user)
        self.assertEqual(self.client.get(reverse('comment-list')).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('comment-list'), {'status': 'PENDING'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['meta']['total'], 1)
        self.assertEqual(response.data['data'][0]['content'], 'waiting')


class SeedAdminCommandTestCase(TestCase):

    def test_creates_verified_admin(self):
        call_command('seed_admin', name='root', email='root@test.com', password='s3cret!', stdout=StringIO())

        user = User.objects.get(email='root@test.com')
        self.assertEqual(user.profile.role, Profile.Role.ADMIN)
        self.assertTrue(user.profile.email_verified)

    def test_refuses_duplicates(self):
        make_user('root')
        with self.assertRaises(CommandError):
            call_command('seed_admin', name='root2', email='root@test.com', password='x', stdout=StringIO())

    @override_settings(APP_ADMIN_EMAIL=None, APP_ADMIN_PASS=None)
    def test_requires_credentials(self):
        with self.assertRaises(CommandError):
            call_command('seed_admin', email=None, password=None, stdout=StringIO())


class HealthTestCase(TestCase):

    def test_root_reports_database(self):
        response = self.client.get(reverse('api-root'))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['database'], 'connected')


class ExceptionHandlerTestCase(TestCase):
    """
    Test the fallback branches of the error envelope.

    CRITICAL: database and unexpected errors never leak their details.
    """

    def test_integrity_error_is_conflict(self):
        exc = IntegrityError('duplicate key value violates unique constraint "blog_tag_name_key"')
        with self.assertLogs('blog.exceptions', level='WARNING'):
            response = custom_exception_handler(exc, {})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(response.data['success'])
        self.assertIsNone(response.data['error'])
        self.assertNotIn('blog_tag_name_key', response.data['message'])

    def test_unexpected_error_is_hidden(self):
        with self.assertLogs('blog.exceptions', level='ERROR'):
            response = custom_exception_handler(RuntimeError('secret internals'), {})

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {
            'success': False,
            'message': 'Internal Server Error',
            'error': None,
        })
