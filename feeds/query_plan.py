"""
Query plan types

A ``QueryPlan`` is the compiled, store-agnostic form of a feed pipeline:

- ``predicate``: a small tree of ``Atom`` / ``Not`` / ``AllOf`` / ``AnyOf``
  nodes. Every node is tagged with the block kind (or ``visibility``) that
  produced it so the plan can be inspected and explained.
- ``order_keys``: ``(key, direction)`` pairs, always ending with the
  ``post.id`` ascending tie-break so the order is total.
- ``result_cap``: the pipeline's limit block, or None.
- session values (``seed``, ``as_of``): bound when the first page is fetched
  and carried in cursors; they take part in the fingerprint.

Plans are immutable and have a canonical dict form, so compiling the same
pipeline twice yields identical ``to_dict()`` output and fingerprint.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional, Tuple, Union
from uuid import UUID

from feeds.blocks import DIRECTION_ASC

# Predicate fields understood by executors.
FIELD_AUTHOR_USERNAME = "author.username"
FIELD_AUTHOR_ID = "post.author_id"
FIELD_AUTHOR_FOLLOWED_BY = "author.followed_by"
FIELD_POST_TYPE = "post.type"
FIELD_HASHTAG = "post.hashtag"
FIELD_CREATED_AT = "post.created_at"
FIELD_VISIBILITY = "post.visibility"
FIELD_DELETED_AT = "post.deleted_at"
FIELD_MODERATION = "post.moderation_status"

OP_IN = "in"
OP_EQ = "eq"
OP_GTE = "gte"
OP_LTE = "lte"
OP_IS_NULL = "is_null"

# Order keys.
KEY_CREATED_AT = "post.created_at"
KEY_RANDOM = "random"
KEY_ID = "post.id"
SCORE_PREFIX = "score."

SOURCE_VISIBILITY = "visibility"
SOURCE_PIPELINE = "pipeline"
SOURCE_PLAN = "plan"


@dataclass(frozen=True)
class Atom:
    field: str
    op: str
    value: Any
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"atom": self.field, "op": self.op, "value": _plain(self.value), "source": self.source}

    def iter_nodes(self) -> Iterator["Predicate"]:
        yield self


@dataclass(frozen=True)
class Not:
    child: "Predicate"
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"not": self.child.to_dict(), "source": self.source}

    def iter_nodes(self) -> Iterator["Predicate"]:
        yield self
        yield from self.child.iter_nodes()


@dataclass(frozen=True)
class AllOf:
    """Conjunction; with no children it is always true."""

    children: Tuple["Predicate", ...]
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"all": [c.to_dict() for c in self.children], "source": self.source}

    def iter_nodes(self) -> Iterator["Predicate"]:
        yield self
        for child in self.children:
            yield from child.iter_nodes()


@dataclass(frozen=True)
class AnyOf:
    """Disjunction; with no children it is always false."""

    children: Tuple["Predicate", ...]
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"any": [c.to_dict() for c in self.children], "source": self.source}

    def iter_nodes(self) -> Iterator["Predicate"]:
        yield self
        for child in self.children:
            yield from child.iter_nodes()


Predicate = Union[Atom, Not, AllOf, AnyOf]


@dataclass(frozen=True)
class OrderKey:
    key: str
    direction: str

    @property
    def is_score(self) -> bool:
        return self.key.startswith(SCORE_PREFIX)

    @property
    def metric(self) -> Optional[str]:
        return self.key[len(SCORE_PREFIX):] if self.is_score else None

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "direction": self.direction}


TIE_BREAK = OrderKey(KEY_ID, DIRECTION_ASC)


@dataclass(frozen=True)
class QueryPlan:
    predicate: Predicate
    order_keys: Tuple[OrderKey, ...]
    result_cap: Optional[int] = None
    seed: Optional[int] = None
    seed_implicit: bool = False
    time_window: Optional[timedelta] = None
    as_of: Optional[datetime] = None

    # --- ordering --------------------------------------------------------
    @property
    def primary_key(self) -> OrderKey:
        return self.order_keys[0]

    @property
    def uses_random_order(self) -> bool:
        return any(k.key == KEY_RANDOM for k in self.order_keys)

    @property
    def uses_score_order(self) -> bool:
        return any(k.is_score for k in self.order_keys)

    # --- session binding -------------------------------------------------
    @property
    def needs_seed(self) -> bool:
        return self.uses_random_order and self.seed is None

    @property
    def needs_as_of(self) -> bool:
        return self.uses_score_order and self.as_of is None

    @property
    def is_bound(self) -> bool:
        return not (self.needs_seed or self.needs_as_of)

    def bind_session(self, *, seed: Optional[int] = None, as_of: Optional[datetime] = None) -> "QueryPlan":
        """Fill in missing session values; values the pipeline fixed are kept."""
        changes: Dict[str, Any] = {}
        if self.needs_seed and seed is not None:
            changes.update(seed=seed, seed_implicit=True)
        if self.needs_as_of and as_of is not None:
            changes["as_of"] = as_of
        return replace(self, **changes) if changes else self

    def session(self) -> Dict[str, Any]:
        """Session values a cursor must carry to rebuild this plan."""
        values: Dict[str, Any] = {}
        if self.uses_random_order and self.seed is not None:
            values["seed"] = self.seed
        if self.uses_score_order and self.as_of is not None:
            values["as_of"] = self.as_of
        return values

    # --- canonical form --------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicate": self.predicate.to_dict(),
            "order": [k.to_dict() for k in self.order_keys],
            "result_cap": self.result_cap,
            "seed": self.seed,
            "seed_implicit": self.seed_implicit,
            "time_window": None if self.time_window is None else int(self.time_window.total_seconds()),
            "as_of": _plain(self.as_of),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @property
    def fingerprint(self) -> str:
        """Hash of the whole canonical plan, filter values and session included.

        Any edit to a feed's blocks therefore invalidates its cursors, even one
        that keeps the plan's shape.
        """
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    def sources(self) -> Tuple[str, ...]:
        """Distinct node sources, in first-seen order."""
        seen = []
        for node in self.predicate.iter_nodes():
            if node.source not in seen:
                seen.append(node.source)
        return tuple(seen)


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (tuple, list)):
        return [_plain(v) for v in value]
    return value
