"""Feed service: compile pipelines and page through their results."""

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence
from uuid import UUID

from django.utils import timezone

from feeds.blocks import DIRECTION_DESC, SortRecentBlock
from feeds.conf import engine_setting
from feeds.exceptions import ExecutionError, InvalidPageSize, StaleCursor
from feeds.models import FeedDefinition, Post
from feeds.query_plan import FIELD_AUTHOR_FOLLOWED_BY, OP_EQ, AnyOf, Atom, QueryPlan
from feeds.repos.post_repo import PostExecutor, PostRepo, ScoredPost
from feeds.services.cursor_codec import CursorCodec, CursorPosition
from feeds.services.feed_definitions import FeedDefinitionService
from feeds.services.pipeline_validator import ValidatedPipeline, validate_or_raise
from feeds.services.plan_compiler import compile_plan

logger = logging.getLogger(__name__)

SOURCE_FOLLOWING = "following"
SEED_BITS = 63


@dataclass(frozen=True)
class FeedPage:
    items: List[Post]
    next_cursor: Optional[str]
    has_more: bool


class FeedService:
    """Compile feed pipelines into plans and serve cursor-paginated pages."""

    def __init__(
        self,
        *,
        executor: PostExecutor | None = None,
        codec: CursorCodec | None = None,
        definitions: FeedDefinitionService | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.executor = executor or PostRepo()
        self.codec = codec or CursorCodec()
        self.definitions = definitions or FeedDefinitionService()
        self.sleep = sleep

    # --- compilation -----------------------------------------------------
    def compile_plan(self, source: Any, viewer) -> QueryPlan:
        """Compile a FeedDefinition, a feed id, a validated pipeline or raw blocks."""
        if isinstance(source, ValidatedPipeline):
            pipeline = source
        elif isinstance(source, FeedDefinition):
            pipeline = validate_or_raise(source.blocks)
        elif isinstance(source, (str, UUID)):
            pipeline = validate_or_raise(self.definitions.fetch(viewer, source).blocks)
        else:
            pipeline = validate_or_raise(source)
        return compile_plan(pipeline, viewer)

    def following_pipeline(self, viewer) -> ValidatedPipeline:
        """Pipeline of the default Following feed; authors are scoped in ``following_plan``."""
        return validate_or_raise([SortRecentBlock(direction=DIRECTION_DESC).to_wire()])

    def following_plan(self, viewer) -> QueryPlan:
        """Posts by accounts ``viewer`` follows, newest first."""
        if viewer is None or not getattr(viewer, "is_authenticated", False):
            scope = AnyOf((), SOURCE_FOLLOWING)
        else:
            scope = Atom(FIELD_AUTHOR_FOLLOWED_BY, OP_EQ, viewer.pk, SOURCE_FOLLOWING)
        return compile_plan(self.following_pipeline(viewer), viewer, scope=(scope,))

    # --- pagination ------------------------------------------------------
    def effective_page_size(self, plan: QueryPlan, page_size: Any = None) -> int:
        """min(pipeline limit, requested size or the default, hard maximum)."""
        if page_size is None:
            page_size = engine_setting("DEFAULT_PAGE_SIZE")
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
            raise InvalidPageSize(page_size=page_size)
        size = min(page_size, engine_setting("MAX_PAGE_SIZE"))
        if plan.result_cap is not None:
            size = min(size, plan.result_cap)
        return size

    def start_session(self, plan: QueryPlan) -> QueryPlan:
        """Bind the values a fresh pagination chain needs (seed, snapshot time)."""
        return plan.bind_session(
            seed=secrets.randbits(SEED_BITS) if plan.needs_seed else None,
            as_of=timezone.now() if plan.needs_as_of else None,
        )

    def paginate(self, plan: QueryPlan, cursor: Any = None, page_size: Any = None) -> FeedPage:
        """Return the page after ``cursor`` (or the first page) and the next cursor."""
        size = self.effective_page_size(plan, page_size)

        position: Optional[CursorPosition] = None
        if cursor is None:
            plan = self.start_session(plan)
        else:
            position = cursor if isinstance(cursor, CursorPosition) else self.codec.decode(cursor)
            plan = plan.bind_session(**position.session)
            if position.fingerprint != plan.fingerprint:
                logger.warning("stale cursor: issued for %s, resumed against %s", position.fingerprint[:12], plan.fingerprint[:12])
                raise StaleCursor()
            if position.exhausted:
                return FeedPage([], self.codec.encode(position), False)

        rows = self._find(plan, position.keyset if position else None, size + 1)
        has_more = len(rows) > size
        rows = rows[:size]

        if has_more:
            last = rows[-1]
            next_position = CursorPosition(last.order_values, last.tie_break_id, plan.fingerprint, plan.session())
        else:
            next_position = CursorPosition.terminal(plan.fingerprint, plan.session())
        logger.debug("plan %s page: %d items, has_more=%s", plan.fingerprint[:12], len(rows), has_more)
        return FeedPage([row.post for row in rows], self.codec.encode(next_position), has_more)

    def get_feed(
        self,
        viewer,
        *,
        feed_id: Any = None,
        blocks: Optional[Sequence[Any]] = None,
        cursor: Optional[str] = None,
        page_size: Any = None,
    ) -> FeedPage:
        """Serve one page of a saved feed, an ad-hoc pipeline or the Following feed."""
        if feed_id is not None:
            plan = self.compile_plan(feed_id, viewer)
        elif blocks is not None:
            plan = self.compile_plan(validate_or_raise(blocks), viewer)
        else:
            plan = self.following_plan(viewer)
        return self.paginate(plan, cursor, page_size)

    def _find(self, plan: QueryPlan, after, limit: int) -> List[ScoredPost]:
        """Run the executor, retrying transient store failures with backoff."""
        attempts = max(1, int(engine_setting("EXECUTOR_MAX_ATTEMPTS")))
        backoff = engine_setting("EXECUTOR_BACKOFF_SECONDS")
        for attempt in range(1, attempts + 1):
            try:
                return self.executor.find(plan, after, limit)
            except ExecutionError:
                if attempt == attempts:
                    logger.error("post store failed %d times for plan %s", attempts, plan.fingerprint[:12])
                    raise
                delay = backoff * 2 ** (attempt - 1)
                logger.warning("post store failed (attempt %d/%d), retrying in %.2fs", attempt, attempts, delay)
                self.sleep(delay)
        return []
