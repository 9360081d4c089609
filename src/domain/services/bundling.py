"""Semantic bundling of a user's pending notifications."""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

import structlog

from core.config import settings
from domain.entities.notification import BundledNotification, Notification, Priority
from infrastructure.ai.provider import ISimilarityOracle

logger = structlog.get_logger()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise ValueError(f"Embedding dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass
class BundleUnit:
    """One deliverable unit: the carrier plus the notifications merged into it."""

    carrier: Notification
    absorbed: list[Notification] = field(default_factory=list)

    @property
    def members(self) -> list[Notification]:
        return [self.carrier, *self.absorbed]

    @property
    def is_bundle(self) -> bool:
        return bool(self.absorbed)

    @property
    def priority(self) -> Priority | None:
        """Highest priority stated by any member, None when nobody stated one."""
        stated = [n.stated_priority for n in self.members if n.stated_priority is not None]
        return max(stated) if stated else None

    def merge(self, now: datetime) -> None:
        """Fold absorbed members into the carrier.

        The carrier's payload lists every absorbed member and takes the
        highest member priority; absorbed members go straight to sent
        without a delivery attempt. Singletons are left untouched.
        """
        if not self.absorbed:
            return

        previous = list(self.carrier.payload.get("bundled_notifications") or [])
        summaries = [
            BundledNotification(id=n.id, type=n.type, payload=n.payload).to_dict()
            for n in self.absorbed
        ]
        payload = {
            **self.carrier.payload,
            "bundled": True,
            "bundled_notifications": previous + summaries,
        }
        if self.priority is not None:
            payload["priority"] = self.priority.label
        self.carrier.payload = payload
        self.carrier.updated_at = now

        for notification in self.absorbed:
            notification.mark_sent(now)


@dataclass
class _Group:
    members: list[Notification]
    representative: list[float]


class BundlingEngine:
    """Groups semantically related notifications, first-come first-served.

    Each notification joins the first open group whose representative
    (the group's first member) has cosine similarity >= threshold with it;
    otherwise it opens a new group. Notifications the oracle cannot embed
    stay on their own.
    """

    def __init__(
        self,
        oracle: ISimilarityOracle,
        threshold: float = settings.bundle_similarity_threshold,
    ) -> None:
        self._oracle = oracle
        self._threshold = threshold

    async def bundle(self, pending: list[Notification]) -> list[BundleUnit]:
        """Group notifications into units. Does not mutate its input."""
        if not pending:
            return []

        embeddings = await asyncio.gather(
            *(self._oracle.embed(n.content_text()) for n in pending),
            return_exceptions=True,
        )

        groups: list[_Group] = []
        singletons: dict[int, Notification] = {}
        order: list[tuple[str, int]] = []

        for index, (notification, embedding) in enumerate(zip(pending, embeddings)):
            if isinstance(embedding, BaseException):
                if not isinstance(embedding, Exception):
                    raise embedding
                logger.warning(
                    "bundling_embedding_failed",
                    notification_id=str(notification.id),
                    error=str(embedding),
                )
                singletons[index] = notification
                order.append(("single", index))
                continue

            target = self._find_group(groups, embedding)
            if target is None:
                groups.append(_Group(members=[notification], representative=embedding))
                order.append(("group", len(groups) - 1))
            else:
                target.members.append(notification)

        units: list[BundleUnit] = []
        for kind, index in order:
            if kind == "single":
                units.append(BundleUnit(carrier=singletons[index]))
            else:
                carrier, *absorbed = groups[index].members
                units.append(BundleUnit(carrier=carrier, absorbed=absorbed))

        bundled = sum(len(u.absorbed) for u in units)
        if bundled:
            logger.debug("notifications_bundled", units=len(units), absorbed=bundled)
        return units

    def _find_group(self, groups: list[_Group], embedding: list[float]) -> _Group | None:
        for group in groups:
            if cosine_similarity(embedding, group.representative) >= self._threshold:
                return group
        return None
