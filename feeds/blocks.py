"""
Feed pipeline blocks

A feed definition is an ordered list of blocks. Each block kind is a small
frozen dataclass; the wire form is a JSON object whose ``type`` key names the
kind (``filter-author``, ``sort-random``, ...) and whose other keys are the
kind's fields in camelCase.

Parsing here is structural only: field presence, field types and enum
values. Pipeline-level rules (block counts, duplicate limits, date ordering)
belong to the pipeline validator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Any, Callable, ClassVar, Dict, Iterable, Mapping, Optional, Tuple, Union

from django.utils.dateparse import parse_date, parse_datetime

from feeds.conf import engine_setting
from feeds.exceptions import InvalidBlock, UnsupportedBlockKind

MODE_INCLUDE = "include"
MODE_EXCLUDE = "exclude"
MODES = (MODE_INCLUDE, MODE_EXCLUDE)

DIRECTION_ASC = "asc"
DIRECTION_DESC = "desc"
DIRECTIONS = (DIRECTION_ASC, DIRECTION_DESC)

POST_TYPE_TEXT = "text"
POST_TYPE_IMAGE = "image"
POST_TYPE_GALLERY = "gallery"
POST_TYPE_VIDEO = "video"
POST_TYPE_SONG = "song"
POST_TYPE_LINK = "link"
POST_TYPES = (
    POST_TYPE_TEXT,
    POST_TYPE_IMAGE,
    POST_TYPE_GALLERY,
    POST_TYPE_VIDEO,
    POST_TYPE_SONG,
    POST_TYPE_LINK,
)

METRIC_LIKES = "likes"
METRIC_COMMENTS = "comments"
METRIC_SHARES = "shares"
METRIC_ENGAGEMENT = "engagement"
METRICS = (METRIC_LIKES, METRIC_COMMENTS, METRIC_SHARES, METRIC_ENGAGEMENT)

MIN_LIMIT = 1
MAX_LIMIT = 200
MAX_SEED = 2**64 - 1

_WINDOW_PATTERN = re.compile(r"^(\d+)([mhdw])$")
_WINDOW_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


# ---------------------------------------------------------------------------
# Block kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterAuthorBlock:
    kind: ClassVar[str] = "filter-author"
    usernames: Tuple[str, ...] = ()
    mode: str = MODE_INCLUDE
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return self.usernames

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self, usernames=list(self.usernames), mode=self.mode)


@dataclass(frozen=True)
class FilterTypeBlock:
    kind: ClassVar[str] = "filter-type"
    types: Tuple[str, ...] = ()
    mode: str = MODE_INCLUDE
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return self.types

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self, types=list(self.types), mode=self.mode)


@dataclass(frozen=True)
class FilterHashtagBlock:
    kind: ClassVar[str] = "filter-hashtag"
    tags: Tuple[str, ...] = ()
    mode: str = MODE_INCLUDE
    match_all: bool = False
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return self.tags

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self, tags=list(self.tags), mode=self.mode, matchAll=self.match_all)


@dataclass(frozen=True)
class FilterDateBlock:
    kind: ClassVar[str] = "filter-date"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return ()

    def to_wire(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if self.start is not None:
            fields["from"] = self.start.isoformat()
        if self.end is not None:
            fields["to"] = self.end.isoformat()
        return _wire(self, **fields)


@dataclass(frozen=True)
class SortPopularBlock:
    kind: ClassVar[str] = "sort-popular"
    metric: str = METRIC_ENGAGEMENT
    direction: str = DIRECTION_DESC
    time_window: Optional[timedelta] = None
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return ()

    def to_wire(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"metric": self.metric, "direction": self.direction}
        if self.time_window is not None:
            fields["timeWindow"] = int(self.time_window.total_seconds())
        return _wire(self, **fields)


@dataclass(frozen=True)
class SortRecentBlock:
    kind: ClassVar[str] = "sort-recent"
    direction: str = DIRECTION_DESC
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return ()

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self, direction=self.direction)


@dataclass(frozen=True)
class SortRandomBlock:
    kind: ClassVar[str] = "sort-random"
    seed: Optional[int] = None
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return ()

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self) if self.seed is None else _wire(self, seed=self.seed)


@dataclass(frozen=True)
class LimitBlock:
    kind: ClassVar[str] = "limit"
    count: int = 20
    id: Optional[str] = None

    def values(self) -> Tuple[str, ...]:
        return ()

    def to_wire(self) -> Dict[str, Any]:
        return _wire(self, count=self.count)


FilterBlock = Union[FilterAuthorBlock, FilterTypeBlock, FilterHashtagBlock, FilterDateBlock]
SortBlock = Union[SortPopularBlock, SortRecentBlock, SortRandomBlock]
Block = Union[FilterBlock, SortBlock, LimitBlock]

FILTER_BLOCKS = (FilterAuthorBlock, FilterTypeBlock, FilterHashtagBlock, FilterDateBlock)
SORT_BLOCKS = (SortPopularBlock, SortRecentBlock, SortRandomBlock)


def is_filter(block: Block) -> bool:
    return isinstance(block, FILTER_BLOCKS)


def is_sort(block: Block) -> bool:
    return isinstance(block, SORT_BLOCKS)


def _wire(block: Block, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": block.kind}
    if block.id is not None:
        out["id"] = block.id
    out.update(fields)
    return out


# ---------------------------------------------------------------------------
# Wire parsing
# ---------------------------------------------------------------------------


def parse_block(raw: Any, index: Optional[int] = None) -> Block:
    """Turn one wire-form block into its typed dataclass.

    Raises ``UnsupportedBlockKind`` for a ``type`` this engine does not know
    (never ignored, a dropped filter would leak content) and ``InvalidBlock``
    for anything else that is malformed.
    """
    if not isinstance(raw, Mapping):
        raise InvalidBlock("Block must be an object.", index=index)
    kind = raw.get("type")
    if not isinstance(kind, str) or not kind:
        raise InvalidBlock("Block requires a 'type'.", index=index)
    parser = _PARSERS.get(kind)
    if parser is None:
        raise UnsupportedBlockKind(f"Unsupported block kind: {kind}", index=index, kind=kind)
    block_id = raw.get("id")
    if block_id is not None and not isinstance(block_id, str):
        raise InvalidBlock("'id' must be a string.", index=index)
    return parser(raw, block_id, index)


def _parse_author(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> FilterAuthorBlock:
    usernames = _string_set(raw, "usernames", index, normalise=_normalise_username)
    return FilterAuthorBlock(usernames=usernames, mode=_choice(raw, "mode", MODES, MODE_INCLUDE, index), id=block_id)


def _parse_type(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> FilterTypeBlock:
    types = _string_set(raw, "types", index, normalise=str.lower)
    unknown = [t for t in types if t not in POST_TYPES]
    if unknown:
        raise InvalidBlock(f"Unknown post type: {unknown[0]}", index=index)
    return FilterTypeBlock(types=types, mode=_choice(raw, "mode", MODES, MODE_INCLUDE, index), id=block_id)


def _parse_hashtag(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> FilterHashtagBlock:
    tags = _string_set(raw, "tags", index, normalise=normalise_tag)
    match_all = raw.get("matchAll", False)
    if not isinstance(match_all, bool):
        raise InvalidBlock("'matchAll' must be a boolean.", index=index)
    return FilterHashtagBlock(
        tags=tags,
        mode=_choice(raw, "mode", MODES, MODE_INCLUDE, index),
        match_all=match_all,
        id=block_id,
    )


def _parse_date(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> FilterDateBlock:
    start = _timestamp(raw.get("from"), "from", index, end_of_day=False)
    end = _timestamp(raw.get("to"), "to", index, end_of_day=True)
    return FilterDateBlock(start=start, end=end, id=block_id)


def _parse_popular(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> SortPopularBlock:
    metric = _choice(raw, "metric", METRICS, None, index)
    window = raw.get("timeWindow")
    return SortPopularBlock(
        metric=metric,
        direction=_choice(raw, "direction", DIRECTIONS, DIRECTION_DESC, index),
        time_window=None if window is None else parse_time_window(window, index),
        id=block_id,
    )


def _parse_recent(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> SortRecentBlock:
    return SortRecentBlock(direction=_choice(raw, "direction", DIRECTIONS, DIRECTION_DESC, index), id=block_id)


def _parse_random(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> SortRandomBlock:
    seed = raw.get("seed")
    if seed is not None and (not _is_int(seed) or not 0 <= seed <= MAX_SEED):
        raise InvalidBlock("'seed' must be an unsigned 64-bit integer.", index=index)
    return SortRandomBlock(seed=seed, id=block_id)


def _parse_limit(raw: Mapping, block_id: Optional[str], index: Optional[int]) -> LimitBlock:
    count = raw.get("count")
    if not _is_int(count) or not MIN_LIMIT <= count <= MAX_LIMIT:
        raise InvalidBlock(f"'count' must be an integer between {MIN_LIMIT} and {MAX_LIMIT}.", index=index)
    return LimitBlock(count=count, id=block_id)


_PARSERS: Dict[str, Callable[[Mapping, Optional[str], Optional[int]], Block]] = {
    FilterAuthorBlock.kind: _parse_author,
    FilterTypeBlock.kind: _parse_type,
    FilterHashtagBlock.kind: _parse_hashtag,
    FilterDateBlock.kind: _parse_date,
    SortPopularBlock.kind: _parse_popular,
    SortRecentBlock.kind: _parse_recent,
    SortRandomBlock.kind: _parse_random,
    LimitBlock.kind: _parse_limit,
}

BLOCK_KINDS = tuple(_PARSERS)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def normalise_tag(tag: str) -> str:
    """Lower-case a hashtag and drop a single leading '#'."""
    tag = tag.strip()
    if tag.startswith("#"):
        tag = tag[1:]
    return tag.lower()


def _normalise_username(username: str) -> str:
    username = username.strip()
    if username.startswith("@"):
        username = username[1:]
    return username.lower()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _choice(raw: Mapping, key: str, allowed: Iterable[str], default: Optional[str], index: Optional[int]) -> str:
    value = raw.get(key, default)
    if value is None:
        raise InvalidBlock(f"Block requires '{key}'.", index=index)
    if value not in allowed:
        raise InvalidBlock(f"Invalid {key}: {value}", index=index)
    return value


def _string_set(raw: Mapping, key: str, index: Optional[int], *, normalise: Callable[[str], str]) -> Tuple[str, ...]:
    """Read a JSON array of strings as a sorted, de-duplicated tuple."""
    values = raw.get(key)
    if values is None:
        raise InvalidBlock(f"Block requires '{key}'.", index=index)
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set, frozenset)):
        raise InvalidBlock(f"'{key}' must be an array of strings.", index=index)
    cleaned = set()
    for value in values:
        if not isinstance(value, str):
            raise InvalidBlock(f"'{key}' must be an array of strings.", index=index)
        value = normalise(value)
        if value:
            cleaned.add(value)
    return tuple(sorted(cleaned))


def _timestamp(value: Any, key: str, index: Optional[int], *, end_of_day: bool) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (or date) into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    elif isinstance(value, str):
        # date-only first: parse_datetime would read "2024-01-31" as midnight
        try:
            day = parse_date(value)
            if day is not None:
                parsed = datetime.combine(day, time.max if end_of_day else time.min)
            else:
                parsed = parse_datetime(value)
        except ValueError:
            parsed = None
        if parsed is None:
            raise InvalidBlock(f"'{key}' is not a valid timestamp.", index=index)
    else:
        raise InvalidBlock(f"'{key}' must be an ISO-8601 timestamp.", index=index)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed.astimezone(dt_timezone.utc)


def parse_time_window(value: Any, index: Optional[int] = None) -> timedelta:
    """Accept seconds (int) or '<n>m|h|d|w' and return a positive timedelta.

    Windows longer than ``MAX_TIME_WINDOW`` are rejected so that
    ``as_of - window`` always stays a representable datetime.
    """
    match = _WINDOW_PATTERN.match(value.strip()) if isinstance(value, str) else None
    try:
        if _is_int(value):
            window = timedelta(seconds=value)
        elif match:
            amount, unit = match.groups()
            window = timedelta(**{_WINDOW_UNITS[unit]: int(amount)})
        else:
            raise InvalidBlock("'timeWindow' must be seconds or a duration like '24h'.", index=index)
    except OverflowError:
        raise InvalidBlock("'timeWindow' is too large.", index=index)
    if window <= timedelta(0):
        raise InvalidBlock("'timeWindow' must be positive.", index=index)
    if window > engine_setting("MAX_TIME_WINDOW"):
        raise InvalidBlock("'timeWindow' is too large.", index=index)
    return window
