"""Ordered fallback tiers for external collaborators.

A resolver lists its tiers best-first; ``first_success`` runs them in order
under a per-tier timeout and returns the first accepted value tagged with the
tier that produced it. Errors and timeouts never leave this helper: a live
call always gets an answer, even if that answer is ``unavailable``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

PRIMARY = "primary"
FALLBACK = "fallback"
UNAVAILABLE = "unavailable"


class CollaboratorError(Exception):
    """An external collaborator failed or returned something unusable."""


@dataclass(frozen=True)
class Tier:
    source: str
    attempt: Callable[[], Awaitable[Any]]
    timeout: float | None = None
    enabled: bool = True


@dataclass(frozen=True)
class TierResult:
    kind: str
    value: Any = None
    source: str = ""

    @property
    def available(self) -> bool:
        return self.kind != UNAVAILABLE


def _accept_any(value) -> bool:
    return value is not None


async def first_success(
    tiers: Sequence[Tier],
    accept: Callable[[Any], bool] = _accept_any,
    label: str = "",
) -> TierResult:
    for index, tier in enumerate(tiers):
        if not tier.enabled:
            logger.debug("%s tier %s skipped", label, tier.source)
            continue
        try:
            if tier.timeout is None:
                value = await tier.attempt()
            else:
                value = await asyncio.wait_for(tier.attempt(), timeout=tier.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s tier %s timed out after %.1fs", label, tier.source, tier.timeout)
            continue
        except Exception as e:
            logger.warning("%s tier %s failed: %s", label, tier.source, e)
            continue

        if not accept(value):
            logger.info("%s tier %s result rejected", label, tier.source)
            continue
        return TierResult(PRIMARY if index == 0 else FALLBACK, value, tier.source)

    logger.error("%s: all tiers failed", label)
    return TierResult(UNAVAILABLE)
