"""
Cursor codec

A cursor records where the previous page stopped: the order key values of
its last item, the ``post.id`` tie-break, the fingerprint of the plan that
produced it and the session values (random seed, popularity snapshot time)
needed to rebuild that exact plan.

Tokens are ``django.core.signing`` payloads (salted, compressed and
timestamped), so a tampered token fails the signature check and an old one
fails the max-age check. Values keep their Python type across the round
trip, so ``decode(encode(position)) == position``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from django.core import signing
from django.utils.dateparse import parse_datetime

from feeds.conf import engine_setting
from feeds.exceptions import CompileError, CursorExpired, CursorMalformed

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1


@dataclass(frozen=True)
class CursorPosition:
    order_values: Tuple[Any, ...]
    tie_break_id: Any
    fingerprint: str
    session: Dict[str, Any] = field(default_factory=dict)
    exhausted: bool = False

    @property
    def keyset(self) -> Tuple[Any, ...]:
        """Full key of the last item, in plan order key order."""
        return tuple(self.order_values) + (self.tie_break_id,)

    @classmethod
    def terminal(cls, fingerprint: str, session: Optional[Dict[str, Any]] = None) -> "CursorPosition":
        """Cursor handed out once a chain is exhausted."""
        return cls((), None, fingerprint, dict(session or {}), exhausted=True)


class CursorCodec:
    """Encode and decode signed pagination tokens."""

    def __init__(self, *, salt: Optional[str] = None, max_age=None) -> None:
        self.salt = salt
        self.max_age = max_age

    def _salt(self) -> str:
        return self.salt or engine_setting("CURSOR_SALT")

    def _max_age(self):
        return self.max_age if self.max_age is not None else engine_setting("CURSOR_TTL")

    def encode(self, position: CursorPosition) -> str:
        payload = {
            "v": PAYLOAD_VERSION,
            "k": [_pack(value) for value in position.order_values],
            "t": _pack(position.tie_break_id),
            "f": position.fingerprint,
            "s": {name: _pack(value) for name, value in sorted(position.session.items())},
            "x": position.exhausted,
        }
        return signing.dumps(payload, salt=self._salt(), compress=True)

    def decode(self, token: Any) -> CursorPosition:
        if not isinstance(token, str) or not token:
            raise CursorMalformed()
        try:
            payload = signing.loads(token, salt=self._salt(), max_age=self._max_age())
        except signing.SignatureExpired:
            logger.warning("rejected expired cursor")
            raise CursorExpired()
        except signing.BadSignature:
            logger.warning("rejected cursor with bad signature")
            raise CursorMalformed()

        try:
            return self._position(payload)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("rejected cursor with unreadable payload")
            raise CursorMalformed()

    def _position(self, payload: Any) -> CursorPosition:
        if not isinstance(payload, dict) or payload.get("v") != PAYLOAD_VERSION:
            raise ValueError("unknown cursor payload")
        fingerprint = payload["f"]
        exhausted = payload["x"]
        if not isinstance(fingerprint, str) or not isinstance(exhausted, bool):
            raise ValueError("bad cursor header")
        return CursorPosition(
            order_values=tuple(_unpack(value) for value in payload["k"]),
            tie_break_id=_unpack(payload["t"]),
            fingerprint=fingerprint,
            session={name: _unpack(value) for name, value in payload["s"].items()},
            exhausted=exhausted,
        )


def _pack(value: Any) -> Any:
    if isinstance(value, datetime):
        return ["dt", value.isoformat()]
    if isinstance(value, UUID):
        return ["uuid", str(value)]
    if value is None or isinstance(value, (int, str)) and not isinstance(value, bool):
        return value
    raise CompileError(f"Cannot encode order key value of type {type(value).__name__}")


def _unpack(value: Any) -> Any:
    if isinstance(value, list):
        tag, raw = value
        if tag == "dt":
            parsed = parse_datetime(raw)
            if parsed is None:
                raise ValueError("bad timestamp")
            return parsed
        if tag == "uuid":
            return UUID(raw)
        raise ValueError(f"unknown value tag {tag}")
    if value is None or isinstance(value, (int, str)) and not isinstance(value, bool):
        return value
    raise ValueError("bad cursor value")
