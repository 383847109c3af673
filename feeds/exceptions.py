"""Error taxonomy for the feed engine and feed definition management.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with, so views never need to know the individual classes.
"""

from typing import Any, Dict, Optional


class FeedEngineError(Exception):
    """Base class for all feed errors."""

    code = "feed_error"
    status_code = 400
    default_message = "Feed request failed."

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        """Return the JSON body used by the API error handler."""
        body: Dict[str, Any] = {"code": self.code, "detail": self.message}
        body.update(self.details)
        return body


# --- validation ----------------------------------------------------------


class PipelineValidationError(FeedEngineError):
    """A proposed block list is not a legal pipeline."""

    code = "validation_error"
    default_message = "Feed pipeline is invalid."

    def __init__(self, message: Optional[str] = None, *, index: Optional[int] = None, **details: Any) -> None:
        self.index = index
        if index is not None:
            details["index"] = index
        super().__init__(message, **details)


class PipelineTooComplex(PipelineValidationError):
    code = "pipeline_too_complex"
    default_message = "Feed pipeline has too many blocks or values."


class DuplicateLimitBlock(PipelineValidationError):
    code = "duplicate_limit_block"
    default_message = "A feed pipeline may contain only one limit block."


class InvalidDateRange(PipelineValidationError):
    code = "invalid_date_range"
    default_message = "Date filter 'from' must not be after 'to'."


class UnsupportedBlockKind(PipelineValidationError):
    code = "unsupported_block_kind"
    default_message = "Unsupported block kind."


class InvalidBlock(PipelineValidationError):
    code = "invalid_block"
    default_message = "Block is malformed."


# --- compilation ---------------------------------------------------------


class CompileError(FeedEngineError):
    """Internal invariant violation while compiling a plan."""

    code = "compile_error"
    status_code = 500
    default_message = "Feed plan could not be compiled."


class UnvalidatedPipeline(CompileError):
    code = "unvalidated_pipeline"
    default_message = "Only validated pipelines can be compiled."


# --- cursors -------------------------------------------------------------


class CursorError(FeedEngineError):
    """The pagination token cannot be used; the client must restart at page one."""

    code = "cursor_error"
    default_message = "Cursor is not usable."

    def as_dict(self) -> Dict[str, Any]:
        body = super().as_dict()
        body["restart"] = True
        return body


class CursorMalformed(CursorError):
    code = "cursor_malformed"
    default_message = "Cursor could not be parsed."


class CursorExpired(CursorError):
    code = "cursor_expired"
    default_message = "Cursor has expired."


class StaleCursor(CursorError):
    code = "stale_cursor"
    default_message = "Cursor was issued for a different feed plan."


# --- execution -----------------------------------------------------------


class ExecutionError(FeedEngineError):
    """The post store failed while running a plan (transient)."""

    code = "execution_error"
    status_code = 503
    default_message = "Post store is temporarily unavailable."


class InvalidPageSize(FeedEngineError):
    code = "invalid_page_size"
    default_message = "Page size must be a positive integer."


# --- feed definitions ----------------------------------------------------


class FeedNotFound(FeedEngineError):
    code = "feed_not_found"
    status_code = 404
    default_message = "Feed not found."


class FeedPermissionDenied(FeedEngineError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to modify this feed."


class DuplicateFeedName(FeedEngineError):
    code = "conflict"
    status_code = 409
    default_message = "A feed with this name already exists."
