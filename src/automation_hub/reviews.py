"""Queue of generated items awaiting human approval."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from automation_hub.storage import (
    Clock,
    atomic_write_json,
    locked_document,
    read_json_object,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

_BUCKETS = ("pending", "completed", "rejected")


class ReviewNotFoundError(LookupError):
    """Raised when a review id is not in the pending bucket."""


class ReviewQueue:
    """``reviews.json`` with ``pending``/``completed``/``rejected`` buckets."""

    def __init__(self, path: Path, *, clock: Clock = utc_now) -> None:
        self.path = path
        self._clock = clock

    def load(self) -> dict[str, list[dict[str, Any]]]:
        try:
            payload = read_json_object(self.path)
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to load review queue %s: %s", self.path, error)
            payload = None
        return _with_buckets(payload)

    def pending(self) -> list[dict[str, Any]]:
        return self.load()["pending"]

    def get(self, review_id: str) -> dict[str, Any] | None:
        queue = self.load()
        for bucket in _BUCKETS:
            for review in queue[bucket]:
                if review.get("id") == review_id:
                    return review
        return None

    def add(self, title: str, **extra: Any) -> dict[str, Any]:
        now = self._clock()
        review = {
            "id": f"rev_{int(now.timestamp() * 1000)}",
            "title": title,
            "created_at": to_iso(now),
            "status": "pending",
            **extra,
        }

        def _apply(queue: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
            taken = {item.get("id") for bucket in _BUCKETS for item in queue[bucket]}
            suffix = 1
            while review["id"] in taken:
                review["id"] = f"rev_{int(now.timestamp() * 1000)}_{suffix}"
                suffix += 1
            queue["pending"].append(review)
            return review

        return self._mutate(_apply)

    def approve(self, review_id: str, notes: str = "") -> dict[str, Any]:
        return self._resolve(review_id, "completed", status="approved", notes=notes)

    def reject(self, review_id: str, reason: str = "") -> dict[str, Any]:
        return self._resolve(review_id, "rejected", status="rejected", reason=reason)

    def _resolve(
        self,
        review_id: str,
        target: str,
        *,
        status: str,
        **fields: str,
    ) -> dict[str, Any]:
        resolved_at = to_iso(self._clock())

        def _apply(queue: dict[str, list[dict[str, Any]]]) -> dict[str, Any]:
            for index, review in enumerate(queue["pending"]):
                if review.get("id") == review_id:
                    break
            else:
                raise ReviewNotFoundError(f"Pending review not found: {review_id}")
            review = queue["pending"].pop(index)
            review["status"] = status
            review[f"{status}_at"] = resolved_at
            review.update(fields)
            queue[target].append(review)
            return review

        return self._mutate(_apply)

    def _mutate(
        self,
        apply: Callable[[dict[str, list[dict[str, Any]]]], dict[str, Any]],
    ) -> dict[str, Any]:
        with locked_document(self.path):
            queue = _with_buckets(read_json_object(self.path))
            review = apply(queue)
            atomic_write_json(self.path, queue)
        return review


def _with_buckets(payload: dict[str, Any] | None) -> dict[str, list[dict[str, Any]]]:
    payload = payload or {}
    return {
        bucket: [item for item in payload.get(bucket) or [] if isinstance(item, dict)]
        for bucket in _BUCKETS
    }
