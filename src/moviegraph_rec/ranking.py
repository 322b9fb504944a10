"""Shared ordering and truncation for every strategy."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .errors import InvalidInput
from .models import NodeRecord

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    node: NodeRecord
    score: float = 0.0
    voters: int = 0
    breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.node.key


def check_amount(amount) -> int:
    """
    Validate a requested result count.

    Non-integers are rejected; zero and negative counts are legal and mean
    "no results".
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput(f"amount must be an integer, got {amount!r}")
    return amount


def by_score(candidate: Candidate) -> tuple:
    return (-candidate.score, candidate.title)


def by_score_then_voters(candidate: Candidate) -> tuple:
    return (-candidate.score, -candidate.voters, candidate.title)


def rank(candidates: Iterable[Candidate], amount: int, key=by_score) -> list[Candidate]:
    """Sort deterministically and keep the first ``amount``; never pads."""
    if amount <= 0:
        return []
    ordered = sorted(candidates, key=key)
    logger.debug(f"Ranked {len(ordered)} candidates, keeping {min(amount, len(ordered))}")
    return ordered[:amount]
