from datetime import timedelta
from unittest.mock import MagicMock, call

from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from django.utils import timezone

from feeds.exceptions import (
    CursorMalformed,
    ExecutionError,
    FeedNotFound,
    FeedPermissionDenied,
    InvalidBlock,
    InvalidPageSize,
    StaleCursor,
)
from feeds.models import Comment, Like, Post, Repost
from feeds.repos.post_repo import random_key
from feeds.services.feed import FeedService
from feeds.services.feed_definitions import FeedDefinitionService
from feeds.tests.helpers import follow, make_post, make_user


class FeedServiceTestCase(TestCase):
    def setUp(self):
        self.viewer = make_user(username="viewer")
        self.alice = make_user(username="alice")
        self.bob = make_user(username="bob")
        self.service = FeedService()

    def collect(self, plan, page_size, cursor=None):
        """Follow the cursor chain to the end and return every item."""
        items = []
        for _ in range(100):
            page = self.service.paginate(plan, cursor, page_size)
            items.extend(page.items)
            if not page.has_more:
                return items
            cursor = page.next_cursor
        self.fail("cursor chain did not terminate")

    def plan(self, blocks, viewer=None):
        return self.service.compile_plan(blocks, viewer or self.viewer)


class FeedScenarioTests(FeedServiceTestCase):
    def test_image_filter_with_limit_block(self):
        make_post(author=self.alice, post_type="text", minutes=3)
        b = make_post(author=self.alice, post_type="image", minutes=2)
        c = make_post(author=self.alice, post_type="image", minutes=1)

        page = self.service.paginate(self.plan([
            {"type": "filter-type", "types": ["image"], "mode": "include"},
            {"type": "sort-recent", "direction": "desc"},
            {"type": "limit", "count": 2},
        ]))

        self.assertEqual(page.items, [b, c])
        self.assertFalse(page.has_more)
        self.assertIsNotNone(page.next_cursor)

    def test_seeded_random_pages_do_not_overlap(self):
        posts = [make_post(author=self.alice, minutes=i) for i in range(5)]
        plan = self.plan([{"type": "sort-random", "seed": 42}])

        first = self.service.paginate(plan, page_size=2)
        second = self.service.paginate(plan, first.next_cursor, page_size=10)

        expected = sorted(posts, key=lambda p: (random_key(42, p.id), p.id))
        self.assertEqual(first.items, expected[:2])
        self.assertTrue(first.has_more)
        self.assertEqual(second.items, expected[2:])
        self.assertFalse(second.has_more)
        self.assertFalse(set(first.items) & set(second.items))

    def test_seeded_random_order_is_reproducible(self):
        for i in range(6):
            make_post(author=self.alice, minutes=i)
        plan = self.plan([{"type": "sort-random", "seed": 42}])
        self.assertEqual(
            self.service.paginate(plan, page_size=6).items,
            self.service.paginate(plan, page_size=6).items,
        )

    def test_last_sort_wins_orders_by_likes(self):
        liked = make_post(author=self.alice, minutes=1)
        newest = make_post(author=self.alice, minutes=9)
        for name in ("l1", "l2"):
            Like.objects.create(user=make_user(username=name), post=liked)

        page = self.service.paginate(self.plan([
            {"type": "sort-recent", "direction": "desc"},
            {"type": "sort-popular", "metric": "likes", "direction": "desc"},
        ]))

        self.assertEqual(page.items, [liked, newest])


class CursorChainTests(FeedServiceTestCase):
    def setUp(self):
        super().setUp()
        # duplicate timestamps exercise the id tie-break
        self.posts = [make_post(author=self.alice, minutes=i // 2) for i in range(9)]
        for i, post in enumerate(self.posts[:5]):
            for j in range(i):
                Like.objects.create(user=make_user(username=f"fan{i}x{j}"), post=post)

    def assert_chain_matches_single_fetch(self, blocks, page_size=2):
        plan = self.plan(blocks)
        chained = self.collect(plan, page_size)
        unbounded = self.service.paginate(plan, page_size=200).items
        self.assertEqual(chained, unbounded)
        self.assertEqual(len(chained), len(set(chained)))
        return chained

    def test_recent_desc(self):
        items = self.assert_chain_matches_single_fetch([{"type": "sort-recent", "direction": "desc"}])
        self.assertEqual(set(items), set(self.posts))

    def test_recent_asc(self):
        self.assert_chain_matches_single_fetch([{"type": "sort-recent", "direction": "asc"}], page_size=4)

    def test_popular(self):
        items = self.assert_chain_matches_single_fetch([{"type": "sort-popular", "metric": "likes"}])
        self.assertEqual(items[0], self.posts[4])

    def test_popular_ascending_engagement(self):
        self.assert_chain_matches_single_fetch(
            [{"type": "sort-popular", "metric": "engagement", "direction": "asc"}], page_size=3
        )

    def test_seeded_random(self):
        self.assert_chain_matches_single_fetch([{"type": "sort-random", "seed": 7}], page_size=1)

    def test_unseeded_random_chain_covers_every_post_once(self):
        plan = self.plan([{"type": "sort-random"}])
        items = self.collect(plan, 2)
        self.assertEqual(sorted(p.id for p in items), sorted(p.id for p in self.posts))

    def test_new_posts_do_not_shift_later_pages(self):
        plan = self.plan([{"type": "sort-recent", "direction": "desc"}])
        first = self.service.paginate(plan, page_size=3)
        make_post(author=self.alice, minutes=100)
        rest = self.collect(plan, 3, first.next_cursor)
        self.assertEqual(first.items + rest, sorted(self.posts, key=lambda p: (-p.created_at.timestamp(), p.id)))

    def test_terminal_cursor_returns_empty_page(self):
        plan = self.plan([{"type": "filter-type", "types": ["text"]}])
        last = self.service.paginate(plan, page_size=50)
        self.assertFalse(last.has_more)

        again = self.service.paginate(plan, last.next_cursor, page_size=50)
        self.assertEqual(again.items, [])
        self.assertFalse(again.has_more)
        self.assertTrue(self.service.codec.decode(again.next_cursor).exhausted)


class SessionTests(FeedServiceTestCase):
    def test_popularity_is_frozen_for_the_chain(self):
        top = make_post(author=self.alice, minutes=1)
        middle = make_post(author=self.alice, minutes=2)
        bottom = make_post(author=self.alice, minutes=3)
        for i in range(3):
            Like.objects.create(user=make_user(username=f"a{i}"), post=top)
        for i in range(2):
            Like.objects.create(user=make_user(username=f"b{i}"), post=middle)
        Like.objects.create(user=make_user(username="c0"), post=bottom)

        plan = self.plan([{"type": "sort-popular", "metric": "likes"}])
        first = self.service.paginate(plan, page_size=1)
        later = timezone.now() + timedelta(seconds=5)
        for i in range(5):
            Like.objects.create(user=make_user(username=f"late{i}"), post=bottom, created_at=later)

        second = self.service.paginate(plan, first.next_cursor, page_size=1)
        third = self.service.paginate(plan, second.next_cursor, page_size=1)
        self.assertEqual(first.items + second.items + third.items, [top, middle, bottom])

    def test_time_window_ignores_old_engagement(self):
        old = make_post(author=self.alice, minutes=1)
        fresh = make_post(author=self.alice, minutes=2)
        long_ago = timezone.now() - timedelta(days=3)
        for i in range(4):
            Like.objects.create(user=make_user(username=f"o{i}"), post=old, created_at=long_ago)
        Like.objects.create(user=make_user(username="f0"), post=fresh)

        windowed = self.service.paginate(self.plan([{"type": "sort-popular", "metric": "likes", "timeWindow": "1d"}]))
        all_time = self.service.paginate(self.plan([{"type": "sort-popular", "metric": "likes"}]))
        self.assertEqual(windowed.items, [fresh, old])
        self.assertEqual(all_time.items, [old, fresh])

    def test_engagement_sums_likes_comments_and_shares(self):
        liked = make_post(author=self.alice, minutes=1)
        discussed = make_post(author=self.alice, minutes=2)
        Like.objects.create(user=self.bob, post=liked)
        Like.objects.create(user=self.viewer, post=liked)
        Comment.objects.create(user=self.bob, post=discussed, text="one")
        Comment.objects.create(user=self.bob, post=discussed, text="two")
        Repost.objects.create(user=self.viewer, post=discussed)

        page = self.service.paginate(self.plan([{"type": "sort-popular", "metric": "engagement"}]))
        self.assertEqual(page.items, [discussed, liked])

        shares = self.service.paginate(self.plan([{"type": "sort-popular", "metric": "shares"}]))
        self.assertEqual(shares.items[0], discussed)

    def test_implicit_seed_is_carried_in_the_cursor(self):
        for i in range(4):
            make_post(author=self.alice, minutes=i)
        plan = self.plan([{"type": "sort-random"}])
        first = self.service.paginate(plan, page_size=1)
        position = self.service.codec.decode(first.next_cursor)
        self.assertIn("seed", position.session)
        self.assertLess(position.session["seed"], 2**63)

    def test_cursor_from_edited_feed_is_stale(self):
        for i in range(4):
            make_post(author=self.alice, post_type="image", minutes=i)
        definitions = FeedDefinitionService()
        feed = definitions.create(self.viewer, name="Pics", blocks=[{"type": "filter-type", "types": ["image"]}])

        first = self.service.get_feed(self.viewer, feed_id=feed.id, page_size=2)
        definitions.update(self.viewer, feed.id, blocks=[{"type": "filter-type", "types": ["video"]}])

        with self.assertRaises(StaleCursor) as ctx:
            self.service.get_feed(self.viewer, feed_id=feed.id, cursor=first.next_cursor, page_size=2)
        self.assertTrue(ctx.exception.as_dict()["restart"])

    def test_cursor_from_other_pipeline_is_stale(self):
        for i in range(3):
            make_post(author=self.alice, minutes=i)
        first = self.service.paginate(self.plan([{"type": "sort-recent"}]), page_size=1)
        with self.assertRaises(StaleCursor):
            self.service.paginate(self.plan([{"type": "sort-random", "seed": 1}]), first.next_cursor, page_size=1)

    def test_cursor_from_other_viewer_is_stale(self):
        for i in range(3):
            make_post(author=self.alice, minutes=i)
        first = self.service.paginate(self.plan([]), page_size=1)
        with self.assertRaises(StaleCursor):
            self.service.paginate(self.plan([], viewer=self.bob), first.next_cursor, page_size=1)


class VisibilityTests(FeedServiceTestCase):
    def setUp(self):
        super().setUp()
        self.public = make_post(author=self.alice, minutes=1)
        self.followers_only = make_post(author=self.alice, minutes=2, visibility=Post.VISIBILITY_FOLLOWERS)
        self.private = make_post(author=self.bob, minutes=3, visibility=Post.VISIBILITY_PRIVATE)
        self.own_private = make_post(author=self.viewer, minutes=4, visibility=Post.VISIBILITY_PRIVATE)
        self.deleted = make_post(author=self.alice, minutes=5, deleted_at=timezone.now())
        self.pending = make_post(author=self.alice, minutes=6, moderation_status=Post.MODERATION_PENDING)

    def test_private_post_of_other_author_never_appears(self):
        pipelines = [
            [],
            [{"type": "filter-author", "usernames": ["bob"]}],
            [{"type": "filter-author", "usernames": ["viewer"], "mode": "exclude"}],
            [{"type": "filter-author", "usernames": [], "mode": "exclude"}],
            [{"type": "sort-random", "seed": 3}],
            [{"type": "sort-popular", "metric": "likes"}],
        ]
        for blocks in pipelines:
            items = self.collect(self.plan(blocks), 2)
            self.assertNotIn(self.private, items, blocks)
            self.assertNotIn(self.deleted, items, blocks)
            self.assertNotIn(self.pending, items, blocks)
            self.assertNotIn(self.followers_only, items, blocks)

    def test_default_visibility(self):
        items = self.collect(self.plan([]), 10)
        self.assertEqual(items, [self.own_private, self.public])

    def test_followers_only_visible_after_following(self):
        follow(self.viewer, self.alice)
        items = self.collect(self.plan([]), 10)
        self.assertEqual(items, [self.own_private, self.followers_only, self.public])

    def test_excluding_self_still_applies_visibility(self):
        follow(self.viewer, self.bob)
        items = self.collect(self.plan([{"type": "filter-author", "usernames": ["VIEWER"], "mode": "exclude"}]), 10)
        self.assertEqual(items, [self.public])

    def test_anonymous_viewer_sees_public_only(self):
        items = self.collect(self.plan([], viewer=AnonymousUser()), 10)
        self.assertEqual(items, [self.public])


class FilterTests(FeedServiceTestCase):
    def test_hashtag_any_and_all(self):
        both = make_post(author=self.alice, content="gig tonight #Music #film", minutes=1)
        music = make_post(author=self.alice, content="#music only", minutes=2)
        make_post(author=self.alice, content="nothing tagged", minutes=3)

        any_page = self.service.paginate(self.plan([{"type": "filter-hashtag", "tags": ["music", "film"]}]))
        all_page = self.service.paginate(self.plan([{"type": "filter-hashtag", "tags": ["#music", "film"], "matchAll": True}]))

        self.assertEqual(any_page.items, [music, both])
        self.assertEqual(all_page.items, [both])

    def test_empty_include_matches_nothing_and_empty_exclude_matches_everything(self):
        post = make_post(author=self.alice)
        nothing = self.service.paginate(self.plan([{"type": "filter-hashtag", "tags": [], "matchAll": True}]))
        everything = self.service.paginate(self.plan([{"type": "filter-author", "usernames": [], "mode": "exclude"}]))
        self.assertEqual(nothing.items, [])
        self.assertEqual(everything.items, [post])

    def test_author_and_date_filters_combine(self):
        early = make_post(author=self.alice, minutes=0)
        late = make_post(author=self.alice, minutes=120)
        make_post(author=self.bob, minutes=60)
        page = self.service.paginate(self.plan([
            {"type": "filter-author", "usernames": ["@Alice"]},
            {"type": "filter-date", "from": (early.created_at + timedelta(minutes=1)).isoformat()},
        ]))
        self.assertEqual(page.items, [late])

    def test_excluded_types(self):
        text = make_post(author=self.alice, post_type="text", minutes=1)
        make_post(author=self.alice, post_type="video", minutes=2)
        page = self.service.paginate(self.plan([{"type": "filter-type", "types": ["video"], "mode": "exclude"}]))
        self.assertEqual(page.items, [text])


class FollowingFeedTests(FeedServiceTestCase):
    def test_following_feed_shows_followed_authors_newest_first(self):
        follow(self.viewer, self.alice)
        older = make_post(author=self.alice, minutes=1)
        newer = make_post(author=self.alice, minutes=2, visibility=Post.VISIBILITY_FOLLOWERS)
        make_post(author=self.bob, minutes=3)
        make_post(author=self.viewer, minutes=4)

        page = self.service.get_feed(self.viewer)
        self.assertEqual(page.items, [newer, older])

    def test_following_feed_is_empty_without_follows(self):
        make_post(author=self.alice)
        self.assertEqual(self.service.get_feed(self.viewer).items, [])

    def test_following_pipeline_is_recent_desc(self):
        pipeline = self.service.following_pipeline(self.viewer)
        self.assertEqual(pipeline.to_wire(), [{"type": "sort-recent", "direction": "desc"}])
        plan = self.service.following_plan(self.viewer)
        self.assertIn("following", plan.sources())


class PageSizeTests(FeedServiceTestCase):
    def test_effective_page_size(self):
        plan = self.plan([])
        self.assertEqual(self.service.effective_page_size(plan), 20)
        self.assertEqual(self.service.effective_page_size(plan, 500), 200)
        self.assertEqual(self.service.effective_page_size(plan, 5), 5)
        capped = self.plan([{"type": "limit", "count": 3}])
        self.assertEqual(self.service.effective_page_size(capped, 10), 3)
        self.assertEqual(self.service.effective_page_size(capped, 2), 2)

    def test_invalid_page_sizes(self):
        plan = self.plan([])
        for size in (0, -1, "5", 2.0, True):
            with self.assertRaises(InvalidPageSize):
                self.service.effective_page_size(plan, size)

    def test_limit_block_caps_each_page(self):
        for i in range(5):
            make_post(author=self.alice, minutes=i)
        page = self.service.paginate(self.plan([{"type": "limit", "count": 2}]), page_size=50)
        self.assertEqual(len(page.items), 2)
        self.assertTrue(page.has_more)


class SourceTests(FeedServiceTestCase):
    def test_feed_of_another_user_is_forbidden(self):
        feed = FeedDefinitionService().create(self.alice, name="Mine")
        with self.assertRaises(FeedPermissionDenied):
            self.service.get_feed(self.viewer, feed_id=feed.id)

    def test_unknown_feed(self):
        with self.assertRaises(FeedNotFound):
            self.service.get_feed(self.viewer, feed_id="00000000-0000-0000-0000-000000000000")
        with self.assertRaises(FeedNotFound):
            self.service.get_feed(self.viewer, feed_id="not-a-uuid")

    def test_compile_from_definition_object(self):
        feed = FeedDefinitionService().create(self.viewer, name="Pics", blocks=[{"type": "limit", "count": 4}])
        self.assertEqual(self.service.compile_plan(feed, self.viewer).result_cap, 4)

    def test_ad_hoc_blocks_are_validated(self):
        with self.assertRaises(InvalidBlock):
            self.service.get_feed(self.viewer, blocks={"type": "sort-recent"})


class RetryTests(TestCase):
    def setUp(self):
        self.viewer = make_user(username="viewer")
        self.executor = MagicMock()
        self.sleep = MagicMock()
        self.service = FeedService(executor=self.executor, sleep=self.sleep)
        self.plan = self.service.compile_plan([], self.viewer)

    def test_transient_failures_are_retried_with_backoff(self):
        self.executor.find.side_effect = [ExecutionError(), ExecutionError(), []]
        page = self.service.paginate(self.plan)
        self.assertEqual(page.items, [])
        self.assertEqual(self.executor.find.call_count, 3)
        self.assertEqual(self.sleep.call_args_list, [call(0.05), call(0.1)])

    def test_gives_up_after_max_attempts(self):
        self.executor.find.side_effect = ExecutionError("store down")
        with self.assertRaises(ExecutionError):
            self.service.paginate(self.plan)
        self.assertEqual(self.executor.find.call_count, 3)
        self.assertEqual(self.sleep.call_count, 2)

    def test_cursor_errors_are_not_retried(self):
        with self.assertRaises(CursorMalformed):
            self.service.paginate(self.plan, "garbage")
        self.executor.find.assert_not_called()
