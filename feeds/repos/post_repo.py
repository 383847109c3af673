"""Repository helpers for running compiled feed plans against posts.

``PostRepo`` is the Django ORM executor for ``QueryPlan`` objects. It turns
the plan's predicate tree into ``Q`` objects, orders by the plan's keys and
pages with keyset ("strictly after the last key") filters, never offsets.

Random order cannot be expressed portably in SQL, so for ``sort-random``
plans the matching ids are keyed in Python with a seeded hash and the same
keyset rule is applied there; the page rows are then loaded by primary key.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from django.db import DatabaseError
from django.db.models import Count, IntegerField, OuterRef, Q, QuerySet, Subquery, Value
from django.db.models.functions import Coalesce

from feeds.blocks import DIRECTION_ASC, METRIC_COMMENTS, METRIC_ENGAGEMENT, METRIC_LIKES, METRIC_SHARES
from feeds.db_accessor import DBAccessor
from feeds.exceptions import CompileError, ExecutionError
from feeds.repos.followers_repo import FollowersRepo
from feeds.models import Comment, Like, Post, PostHashtag, Repost
from feeds.query_plan import (
    FIELD_AUTHOR_FOLLOWED_BY,
    FIELD_AUTHOR_ID,
    FIELD_AUTHOR_USERNAME,
    FIELD_CREATED_AT,
    FIELD_DELETED_AT,
    FIELD_HASHTAG,
    FIELD_MODERATION,
    FIELD_POST_TYPE,
    FIELD_VISIBILITY,
    KEY_CREATED_AT,
    KEY_ID,
    KEY_RANDOM,
    OP_EQ,
    OP_GTE,
    OP_IN,
    OP_IS_NULL,
    OP_LTE,
    AllOf,
    AnyOf,
    Atom,
    Not,
    OrderKey,
    Predicate,
    QueryPlan,
)

logger = logging.getLogger(__name__)

SCORE_ANNOTATION = "feed_score"

# Matches nothing; stands in for empty disjunctions and empty ``in`` sets.
MATCH_NONE = Q(pk__in=[])

_METRIC_MODELS = {
    METRIC_LIKES: (Like,),
    METRIC_COMMENTS: (Comment,),
    METRIC_SHARES: (Repost,),
    METRIC_ENGAGEMENT: (Like, Comment, Repost),
}

_SIMPLE_FIELDS = {
    FIELD_AUTHOR_ID: "author_id",
    FIELD_POST_TYPE: "post_type",
    FIELD_CREATED_AT: "created_at",
    FIELD_VISIBILITY: "visibility",
    FIELD_DELETED_AT: "deleted_at",
    FIELD_MODERATION: "moderation_status",
}

_OP_LOOKUPS = {
    OP_EQ: "exact",
    OP_IN: "in",
    OP_GTE: "gte",
    OP_LTE: "lte",
    OP_IS_NULL: "isnull",
}


@dataclass(frozen=True)
class ScoredPost:
    """A post plus the values of every order key (tie-break last)."""

    post: Post
    key: Tuple[Any, ...]

    @property
    def order_values(self) -> Tuple[Any, ...]:
        return self.key[:-1]

    @property
    def tie_break_id(self) -> Any:
        return self.key[-1]


class PostExecutor(Protocol):
    """Capability the feed service needs from a post store."""

    def find(self, plan: QueryPlan, after: Optional[Sequence[Any]], limit: int) -> List[ScoredPost]:
        ...


# --- predicate translation ---------------------------------------------------


def predicate_to_q(node: Predicate) -> Q:
    """Translate a plan predicate tree into a Django ``Q``."""
    if isinstance(node, Atom):
        return _atom_to_q(node)
    if isinstance(node, Not):
        inner = predicate_to_q(node.child)
        # ~Q() is still "match everything"
        return MATCH_NONE if not inner else ~inner
    if isinstance(node, AllOf):
        q = Q()
        for child in node.children:
            q &= predicate_to_q(child)
        return q
    if isinstance(node, AnyOf):
        if not node.children:
            return MATCH_NONE
        q = predicate_to_q(node.children[0])
        for child in node.children[1:]:
            q |= predicate_to_q(child)
        return q
    raise CompileError(f"Unknown predicate node: {type(node).__name__}")


def _atom_to_q(atom: Atom) -> Q:
    values = atom.value
    if atom.op == OP_IN and not values:
        return MATCH_NONE

    if atom.field == FIELD_AUTHOR_USERNAME:
        names = values if atom.op == OP_IN else (values,)
        q = Q(author__username__iexact=names[0])
        for name in names[1:]:
            q |= Q(author__username__iexact=name)
        return q

    if atom.field == FIELD_AUTHOR_FOLLOWED_BY:
        followed = FollowersRepo().followed_authors(follower_id=values)
        return Q(author_id__in=followed)

    if atom.field == FIELD_HASHTAG:
        tags = list(values) if atom.op == OP_IN else [values]
        tagged = PostHashtag.objects.filter(tag__in=tags).values("post_id")
        return Q(id__in=tagged)

    column = _SIMPLE_FIELDS.get(atom.field)
    lookup = _OP_LOOKUPS.get(atom.op)
    if column is None or lookup is None:
        raise CompileError(f"Unsupported predicate atom: {atom.field} {atom.op}")
    if atom.op == OP_IN:
        values = list(values)
    return Q(**{f"{column}__{lookup}": values})


# --- ordering ----------------------------------------------------------------


def score_expression(metric: str, as_of: datetime, window=None):
    """Engagement count per post, counted up to ``as_of`` (and from ``as_of - window``)."""
    models = _METRIC_MODELS.get(metric)
    if models is None:
        raise CompileError(f"Unknown popularity metric: {metric}")
    expression = None
    for model in models:
        rows = model.objects.filter(post=OuterRef("pk"), created_at__lte=as_of)
        if window is not None:
            rows = rows.filter(created_at__gte=as_of - window)
        counted = rows.order_by().values("post").annotate(total=Count("pk")).values("total")
        term = Coalesce(Subquery(counted, output_field=IntegerField()), Value(0))
        expression = term if expression is None else expression + term
    return expression


def _column_for(order_key: OrderKey) -> str:
    if order_key.key == KEY_CREATED_AT:
        return "created_at"
    if order_key.key == KEY_ID:
        return "id"
    if order_key.is_score:
        return SCORE_ANNOTATION
    raise CompileError(f"Order key {order_key.key} has no column")


def keyset_q(columns: Sequence[Tuple[str, str]], after: Sequence[Any]) -> Q:
    """Rows strictly after ``after`` in the lexicographic order of ``columns``.

    ``(a, b) > (x, y)`` becomes ``a > x OR (a = x AND b > y)``, with ``>``
    flipped to ``<`` for descending columns.
    """
    if len(after) != len(columns):
        raise CompileError("Cursor key does not match the plan's order keys")
    q = Q()
    for i, (column, direction) in enumerate(columns):
        op = "gt" if direction == DIRECTION_ASC else "lt"
        clause = Q(**{f"{column}__{op}": after[i]})
        for j in range(i):
            clause &= Q(**{columns[j][0]: after[j]})
        q |= clause
    return q


def random_key(seed: int, post_id: Any) -> int:
    """63-bit order key for ``sort-random``, stable for a given seed."""
    digest = hashlib.blake2b(f"{seed}:{post_id}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") >> 1


# --- repository --------------------------------------------------------------


class PostRepo(DBAccessor):
    """Repository for Post queries; implements ``PostExecutor``."""
    def __init__(self) -> None:
        """Initialise with the Post model."""
        super().__init__(Post)

    def matching(self, plan: QueryPlan) -> QuerySet:
        """Posts matching the plan predicate, unordered."""
        return self.model.objects.filter(predicate_to_q(plan.predicate))

    def find(self, plan: QueryPlan, after: Optional[Sequence[Any]], limit: int) -> List[ScoredPost]:
        """Return up to ``limit`` posts that sort strictly after ``after``."""
        if not plan.is_bound:
            raise CompileError("Plan must be bound to a session before it is executed")
        try:
            if plan.uses_random_order:
                return self._find_random(plan, after, limit)
            return self._find_ordered(plan, after, limit)
        except DatabaseError as exc:
            logger.warning("post store query failed: %s", exc)
            raise ExecutionError(str(exc) or None) from exc

    def _find_ordered(self, plan: QueryPlan, after: Optional[Sequence[Any]], limit: int) -> List[ScoredPost]:
        qs = self.matching(plan).select_related("author").prefetch_related("hashtags")
        score_key = next((k for k in plan.order_keys if k.is_score), None)
        if score_key is not None:
            qs = qs.annotate(**{SCORE_ANNOTATION: score_expression(score_key.metric, plan.as_of, plan.time_window)})

        columns = [(_column_for(k), k.direction) for k in plan.order_keys]
        if after is not None:
            qs = qs.filter(keyset_q(columns, after))
        ordering = [column if direction == DIRECTION_ASC else f"-{column}" for column, direction in columns]
        posts = list(qs.order_by(*ordering)[:limit])
        return [ScoredPost(post, tuple(getattr(post, column) for column, _ in columns)) for post in posts]

    def _find_random(self, plan: QueryPlan, after: Optional[Sequence[Any]], limit: int) -> List[ScoredPost]:
        if [k.key for k in plan.order_keys] != [KEY_RANDOM, KEY_ID]:
            raise CompileError("Random order cannot be combined with other order keys")
        keyed = sorted(
            (random_key(plan.seed, post_id), post_id)
            for post_id in self.matching(plan).values_list("id", flat=True)
        )
        if after is not None:
            bound = tuple(after)
            keyed = [key for key in keyed if key > bound]
        # Rows removed after the id scan are skipped; the page is topped up from later keys.
        qs = self.model.objects.select_related("author").prefetch_related("hashtags")
        results: List[ScoredPost] = []
        start = 0
        while len(results) < limit and start < len(keyed):
            batch = keyed[start:start + limit - len(results)]
            start += len(batch)
            rows: Dict[Any, Post] = qs.in_bulk([post_id for _, post_id in batch])
            results.extend(ScoredPost(rows[key[1]], key) for key in batch if key[1] in rows)
        return results
