"""Keyset pagination cursors.

A cursor carries the last-seen sort key and id. It is encoded as URL-safe
base64 JSON so that any store binding can reopen a page from it.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime

from batchcodes.engine.errors import InvalidArgumentError


@dataclass(frozen=True, slots=True)
class PageCursor:
    sort_key: str
    id: str

    def encode(self) -> str:
        payload = json.dumps({"k": self.sort_key, "id": self.id}, separators=(",", ":"))
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> PageCursor:
        padded = token + "=" * (-len(token) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise InvalidArgumentError("Malformed page cursor") from exc
        if (
            not isinstance(payload, dict)
            or not isinstance(payload.get("k"), str)
            or not isinstance(payload.get("id"), str)
        ):
            raise InvalidArgumentError("Malformed page cursor")
        return cls(sort_key=payload["k"], id=payload["id"])

    def sort_key_as_datetime(self) -> datetime:
        try:
            return datetime.fromisoformat(self.sort_key)
        except ValueError as exc:
            raise InvalidArgumentError("Malformed page cursor") from exc
