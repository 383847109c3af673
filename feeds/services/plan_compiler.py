"""
Plan compiler

Folds a ``ValidatedPipeline`` and the requesting viewer into one
``QueryPlan``:

1. filter blocks are AND-combined in pipeline order; ``exclude`` mode wraps
   the block's membership test in ``Not``, ``matchAll`` hashtags become an
   AND of per-tag tests
2. the last sort block wins; without one the order is ``sort-recent desc``
3. ``post.id asc`` is always appended as the tie-break
4. the ``limit`` block (if any) becomes ``result_cap``
5. the visibility clause is ANDed on last and cannot be switched off

Compilation is pure. Session values (an implicit random seed, the
popularity snapshot time) are bound later by the feed service.
"""

import logging
from typing import Sequence, Tuple

from feeds.blocks import (
    DIRECTION_ASC,
    DIRECTION_DESC,
    MODE_EXCLUDE,
    FilterAuthorBlock,
    FilterDateBlock,
    FilterHashtagBlock,
    FilterTypeBlock,
    LimitBlock,
    SortPopularBlock,
    SortRandomBlock,
    SortRecentBlock,
    is_filter,
    is_sort,
)
from feeds.exceptions import CompileError, UnvalidatedPipeline
from feeds.query_plan import (
    FIELD_AUTHOR_USERNAME,
    FIELD_CREATED_AT,
    FIELD_HASHTAG,
    FIELD_POST_TYPE,
    KEY_CREATED_AT,
    KEY_RANDOM,
    OP_EQ,
    OP_GTE,
    OP_IN,
    OP_LTE,
    SCORE_PREFIX,
    SOURCE_PIPELINE,
    TIE_BREAK,
    AllOf,
    Atom,
    Not,
    OrderKey,
    Predicate,
    QueryPlan,
)
from feeds.services.pipeline_validator import ValidatedPipeline
from feeds.services.privacy import inject_visibility

logger = logging.getLogger(__name__)

DEFAULT_SORT = SortRecentBlock(direction=DIRECTION_DESC)


def compile_plan(pipeline: ValidatedPipeline, viewer, *, scope: Sequence[Predicate] = ()) -> QueryPlan:
    """Compile a validated pipeline for ``viewer``.

    ``scope`` predicates are ANDed with the pipeline's filters; the default
    Following feed uses it to restrict authors to the viewer's follows.
    """
    if not isinstance(pipeline, ValidatedPipeline):
        raise UnvalidatedPipeline(received=type(pipeline).__name__)

    filters = [block for block in pipeline if is_filter(block)]
    sorts = [block for block in pipeline if is_sort(block)]
    limits = [block for block in pipeline if isinstance(block, LimitBlock)]

    clauses = tuple(_filter_predicate(block) for block in filters) + tuple(scope)
    predicate = inject_visibility(AllOf(clauses, SOURCE_PIPELINE), viewer)

    sort = sorts[-1] if sorts else DEFAULT_SORT
    order_keys = _order_keys(sort) + (TIE_BREAK,)

    plan = QueryPlan(
        predicate=predicate,
        order_keys=order_keys,
        result_cap=limits[0].count if limits else None,
        seed=sort.seed if isinstance(sort, SortRandomBlock) else None,
        time_window=sort.time_window if isinstance(sort, SortPopularBlock) else None,
    )
    logger.debug("compiled plan %s order=%s cap=%s", plan.fingerprint[:12], [k.key for k in order_keys], plan.result_cap)
    return plan


def _order_keys(sort) -> Tuple[OrderKey, ...]:
    if isinstance(sort, SortRecentBlock):
        return (OrderKey(KEY_CREATED_AT, sort.direction),)
    if isinstance(sort, SortPopularBlock):
        return (OrderKey(SCORE_PREFIX + sort.metric, sort.direction),)
    if isinstance(sort, SortRandomBlock):
        return (OrderKey(KEY_RANDOM, DIRECTION_ASC),)
    raise CompileError(f"Unhandled sort block: {type(sort).__name__}")


def _filter_predicate(block) -> Predicate:
    if isinstance(block, FilterAuthorBlock):
        return _membership(block, Atom(FIELD_AUTHOR_USERNAME, OP_IN, block.usernames, block.kind))
    if isinstance(block, FilterTypeBlock):
        return _membership(block, Atom(FIELD_POST_TYPE, OP_IN, block.types, block.kind))
    if isinstance(block, FilterHashtagBlock):
        if block.match_all and block.tags:
            test = AllOf(tuple(Atom(FIELD_HASHTAG, OP_EQ, tag, block.kind) for tag in block.tags), block.kind)
        else:
            test = Atom(FIELD_HASHTAG, OP_IN, block.tags, block.kind)
        return _membership(block, test)
    if isinstance(block, FilterDateBlock):
        bounds = []
        if block.start is not None:
            bounds.append(Atom(FIELD_CREATED_AT, OP_GTE, block.start, block.kind))
        if block.end is not None:
            bounds.append(Atom(FIELD_CREATED_AT, OP_LTE, block.end, block.kind))
        return AllOf(tuple(bounds), block.kind)
    raise CompileError(f"Unhandled filter block: {type(block).__name__}")


def _membership(block, test: Predicate) -> Predicate:
    return Not(test, block.kind) if block.mode == MODE_EXCLUDE else test
