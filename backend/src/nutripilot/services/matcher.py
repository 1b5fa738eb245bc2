"""Free-text food name -> best stored food.

Candidates from the user's private foods and the global catalogue are
gathered with four concurrent pattern queries, scored on nutrient coverage,
and ranked by a pure function so the ordering can be tested in isolation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from nutripilot.services.food_store import FoodCandidate, FoodRef, FoodStore
from nutripilot.utils.text import first_token, normalize_name

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    food_id: Optional[int]
    user_food_id: Optional[int]
    auto_matched: bool
    name: str
    coverage: int = 0

    @property
    def ref(self) -> FoodRef:
        return FoodRef(food_id=self.food_id, user_food_id=self.user_food_id)


def candidate_score(candidate: FoodCandidate, normalized_name: str) -> Tuple[int, int, int]:
    """(exact name match, user-owned, key nutrient coverage); compared lexicographically."""
    exact = 1 if normalize_name(candidate.name) == normalized_name else 0
    return (exact, 1 if candidate.is_user_food else 0, candidate.coverage)


def rank_candidates(candidates: Iterable[FoodCandidate], normalized_name: str) -> List[FoodCandidate]:
    """Best first. Zero-coverage candidates are dropped; ties keep input order."""
    survivors = [c for c in candidates if c.coverage > 0]
    # sorted() is stable with reverse=True as well
    return sorted(survivors, key=lambda c: candidate_score(c, normalized_name), reverse=True)


class FoodMatcher:
    """Request-scoped matcher; pass a fresh ``cache`` dict per request."""

    def __init__(self, store: FoodStore, cache: Optional[Dict[tuple, Optional[MatchResult]]] = None):
        self.store = store
        self.cache: Dict[tuple, Optional[MatchResult]] = cache if cache is not None else {}

    async def _gather_candidates(self, user_id: Optional[str], normalized: str) -> List[FoodCandidate]:
        patterns = list(dict.fromkeys([f"%{normalized}%", f"%{first_token(normalized)}%"]))

        queries = []
        if user_id:
            queries.extend(self.store.search_user_foods(user_id, p) for p in patterns)
        queries.extend(self.store.search_global_foods(p) for p in patterns)
        batches = await asyncio.gather(*queries)

        merged: Dict[tuple, FoodCandidate] = {}
        for batch in batches:
            for c in batch:
                merged.setdefault(c.ref.key, c)
        return list(merged.values())

    async def match(
        self,
        user_id: Optional[str],
        food_name: str,
        exclude: Optional[FoodRef] = None,
    ) -> Optional[MatchResult]:
        normalized = normalize_name(food_name)
        if not normalized:
            return None

        cache_key = (user_id, normalized, exclude.key if exclude else None)
        if cache_key in self.cache:
            return self.cache[cache_key]

        candidates = await self._gather_candidates(user_id, normalized)
        if exclude is not None:
            candidates = [c for c in candidates if c.ref.key != exclude.key]

        counts = await asyncio.gather(*(self.store.key_nutrient_count(c.ref) for c in candidates))
        for c, n in zip(candidates, counts):
            c.coverage = n

        ranked = rank_candidates(candidates, normalized)
        result: Optional[MatchResult] = None
        if ranked:
            best = ranked[0]
            result = MatchResult(
                food_id=best.ref.food_id,
                user_food_id=best.ref.user_food_id,
                auto_matched=True,
                name=best.name,
                coverage=best.coverage,
            )
            logger.debug("matched %r -> %s (%s, coverage=%d)", food_name, best.name, best.ref.key, best.coverage)
        else:
            logger.debug("no match for %r among %d candidates", food_name, len(candidates))

        self.cache[cache_key] = result
        return result
