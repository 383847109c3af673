import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from feeds.exceptions import CompileError, FeedEngineError

logger = logging.getLogger(__name__)


def feed_exception_handler(exc, context):
    """Render feed errors as {"code", "detail", ...} with their own status; defer the rest to DRF."""
    if isinstance(exc, FeedEngineError):
        if isinstance(exc, CompileError):
            logger.exception("feed plan invariant violated: %s", exc.message)
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)
