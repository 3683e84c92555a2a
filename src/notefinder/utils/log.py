"""Logging helpers shared by the build and search paths."""

from __future__ import annotations

import logging
import uuid
from typing import Any, MutableMapping, Optional


class RequestLogger(logging.LoggerAdapter):
    """Prefix records with the user and a per-request correlation id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        return f"user={extra.get('user_id')} req={extra.get('request_id')} {msg}", kwargs


def request_logger(
    logger: logging.Logger, user_id: str, request_id: Optional[str] = None
) -> RequestLogger:
    return RequestLogger(
        logger,
        {"user_id": user_id, "request_id": request_id or uuid.uuid4().hex[:8]},
    )
