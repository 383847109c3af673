from datetime import datetime, timedelta, timezone as dt_timezone

from django.test import TestCase, override_settings

from feeds.blocks import (
    BLOCK_KINDS,
    FilterAuthorBlock,
    FilterDateBlock,
    FilterHashtagBlock,
    FilterTypeBlock,
    LimitBlock,
    SortPopularBlock,
    SortRandomBlock,
    SortRecentBlock,
    normalise_tag,
    parse_block,
    parse_time_window,
)
from feeds.exceptions import InvalidBlock, UnsupportedBlockKind


class ParseBlockTestCase(TestCase):
    def test_author_usernames_are_normalised_and_deduplicated(self):
        block = parse_block({"type": "filter-author", "usernames": ["@Alice", "bob", "alice"]})
        self.assertIsInstance(block, FilterAuthorBlock)
        self.assertEqual(block.usernames, ("alice", "bob"))
        self.assertEqual(block.mode, "include")

    def test_author_exclude_mode(self):
        block = parse_block({"type": "filter-author", "usernames": [], "mode": "exclude"})
        self.assertEqual(block.usernames, ())
        self.assertEqual(block.mode, "exclude")

    def test_author_requires_usernames_array(self):
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-author"})
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-author", "usernames": "alice"})
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-author", "usernames": [1, 2]})

    def test_invalid_mode_is_rejected(self):
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-type", "types": ["image"], "mode": "maybe"})

    def test_type_block_accepts_known_types_only(self):
        block = parse_block({"type": "filter-type", "types": ["Image", "video"]})
        self.assertIsInstance(block, FilterTypeBlock)
        self.assertEqual(block.types, ("image", "video"))
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-type", "types": ["podcast"]})

    def test_hashtags_drop_leading_hash(self):
        block = parse_block({"type": "filter-hashtag", "tags": ["#Music", "film"], "matchAll": True})
        self.assertIsInstance(block, FilterHashtagBlock)
        self.assertEqual(block.tags, ("film", "music"))
        self.assertTrue(block.match_all)

    def test_match_all_must_be_boolean(self):
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-hashtag", "tags": ["a"], "matchAll": "yes"})

    def test_date_only_bounds_cover_whole_days(self):
        block = parse_block({"type": "filter-date", "from": "2024-01-01", "to": "2024-01-31"})
        self.assertIsInstance(block, FilterDateBlock)
        self.assertEqual(block.start, datetime(2024, 1, 1, tzinfo=dt_timezone.utc))
        self.assertEqual(block.end, datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=dt_timezone.utc))

    def test_naive_timestamps_are_utc(self):
        block = parse_block({"type": "filter-date", "from": "2024-03-05T10:30:00"})
        self.assertEqual(block.start, datetime(2024, 3, 5, 10, 30, tzinfo=dt_timezone.utc))
        self.assertIsNone(block.end)

    def test_offset_timestamps_are_converted_to_utc(self):
        block = parse_block({"type": "filter-date", "to": "2024-03-05T10:30:00+02:00"})
        self.assertEqual(block.end, datetime(2024, 3, 5, 8, 30, tzinfo=dt_timezone.utc))

    def test_bad_timestamp_is_rejected(self):
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-date", "from": "yesterday"})
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "filter-date", "from": 1700000000})

    def test_popular_requires_metric(self):
        with self.assertRaises(InvalidBlock):
            parse_block({"type": "sort-popular"})
        block = parse_block({"type": "sort-popular", "metric": "likes", "timeWindow": "24h"})
        self.assertIsInstance(block, SortPopularBlock)
        self.assertEqual(block.direction, "desc")
        self.assertEqual(block.time_window, timedelta(hours=24))

    def test_recent_defaults_to_desc(self):
        self.assertEqual(parse_block({"type": "sort-recent"}), SortRecentBlock(direction="desc"))

    def test_random_seed_must_be_unsigned_64_bit(self):
        self.assertEqual(parse_block({"type": "sort-random", "seed": 42}).seed, 42)
        self.assertIsNone(parse_block({"type": "sort-random"}).seed)
        for seed in (-1, 2**64, True, "42"):
            with self.assertRaises(InvalidBlock):
                parse_block({"type": "sort-random", "seed": seed})

    def test_limit_count_bounds(self):
        self.assertEqual(parse_block({"type": "limit", "count": 200}), LimitBlock(count=200))
        for count in (0, 201, "5", None, 2.5):
            with self.assertRaises(InvalidBlock):
                parse_block({"type": "limit", "count": count})

    def test_unknown_kind_is_unsupported_not_ignored(self):
        with self.assertRaises(UnsupportedBlockKind) as ctx:
            parse_block({"type": "filter-mood", "moods": ["happy"]}, index=3)
        self.assertEqual(ctx.exception.index, 3)
        self.assertEqual(ctx.exception.as_dict()["kind"], "filter-mood")

    def test_non_object_block_is_invalid(self):
        with self.assertRaises(InvalidBlock):
            parse_block(["filter-author"])
        with self.assertRaises(InvalidBlock):
            parse_block({"usernames": ["a"]})

    def test_block_id_is_kept(self):
        block = parse_block({"type": "sort-recent", "direction": "asc", "id": "b1"})
        self.assertEqual(block.id, "b1")
        self.assertEqual(block.to_wire(), {"type": "sort-recent", "id": "b1", "direction": "asc"})

    def test_wire_form_parses_back_to_same_block(self):
        blocks = [
            parse_block({"type": "filter-hashtag", "tags": ["b", "a"], "mode": "exclude", "matchAll": True}),
            parse_block({"type": "filter-date", "from": "2024-01-01T00:00:00Z"}),
            parse_block({"type": "sort-popular", "metric": "engagement", "timeWindow": 3600}),
            parse_block({"type": "sort-random", "seed": 7}),
        ]
        for block in blocks:
            self.assertEqual(parse_block(block.to_wire()), block)

    def test_every_kind_has_a_parser(self):
        self.assertEqual(
            set(BLOCK_KINDS),
            {"filter-author", "filter-type", "filter-hashtag", "filter-date",
             "sort-popular", "sort-recent", "sort-random", "limit"},
        )


class HelperTestCase(TestCase):
    def test_normalise_tag(self):
        self.assertEqual(normalise_tag(" #Django "), "django")
        self.assertEqual(normalise_tag("##x"), "#x")

    def test_parse_time_window_units(self):
        self.assertEqual(parse_time_window("90m"), timedelta(minutes=90))
        self.assertEqual(parse_time_window("2d"), timedelta(days=2))
        self.assertEqual(parse_time_window("1w"), timedelta(weeks=1))
        self.assertEqual(parse_time_window(60), timedelta(seconds=60))

    def test_parse_time_window_rejects_non_positive_and_garbage(self):
        for value in (0, -5, "0h", "24", "h", 1.5, None):
            with self.assertRaises(InvalidBlock):
                parse_time_window(value)

    def test_parse_time_window_rejects_oversized_windows(self):
        for value in ("900000000d", "9999999999999w", 10**13, 3651 * 86400):
            with self.assertRaises(InvalidBlock) as ctx:
                parse_time_window(value, 2)
            self.assertEqual(ctx.exception.index, 2)
        self.assertEqual(parse_time_window("3650d"), timedelta(days=3650))

    @override_settings(FEED_ENGINE={"MAX_TIME_WINDOW": timedelta(days=7)})
    def test_time_window_bound_is_configurable(self):
        self.assertEqual(parse_time_window("1w"), timedelta(weeks=1))
        with self.assertRaises(InvalidBlock):
            parse_time_window("8d")
