import pytest

from nutripilot.services.food_store import FoodCandidate, FoodRef
from nutripilot.services.matcher import FoodMatcher, candidate_score, rank_candidates


def cand(name, coverage, food_id=None, user_food_id=None):
    return FoodCandidate(ref=FoodRef(food_id=food_id, user_food_id=user_food_id), name=name, coverage=coverage)


def test_exact_name_beats_coverage_and_provenance():
    ranked = rank_candidates(
        [
            cand("Banana chips", 40, user_food_id=1),
            cand("Banana", 3, food_id=2),
            cand("Banana bread", 49, food_id=3),
        ],
        "banana",
    )
    assert [c.name for c in ranked] == ["Banana", "Banana chips", "Banana bread"]


def test_user_food_beats_global_then_coverage():
    ranked = rank_candidates(
        [cand("Oat milk", 30, food_id=1), cand("Oat milk barista", 5, user_food_id=7), cand("Oat drink", 45, food_id=2)],
        "oat",
    )
    assert [c.ref.key for c in ranked] == [("user", 7), ("global", 2), ("global", 1)]


def test_zero_coverage_is_dropped_and_ties_keep_input_order():
    ranked = rank_candidates(
        [cand("Rice", 0, food_id=1), cand("Rice, white", 10, food_id=2), cand("Rice, brown", 10, food_id=3)],
        "rice cooked",
    )
    assert [c.ref.food_id for c in ranked] == [2, 3]


def test_score_tuple():
    assert candidate_score(cand("Greek Yogurt", 12, user_food_id=1), "greek yogurt") == (1, 1, 12)


class FakeStore:
    def __init__(self, user=(), global_=(), coverage=None):
        self.user = list(user)
        self.global_ = list(global_)
        self.coverage = coverage or {}
        self.searches = []
        self.count_calls = 0

    @staticmethod
    def _hits(foods, pattern):
        needle = pattern.strip("%")
        return [FoodCandidate(ref=f.ref, name=f.name, brand=f.brand) for f in foods if needle in f.name.lower()]

    async def search_user_foods(self, user_id, pattern):
        self.searches.append(("user", pattern))
        return self._hits(self.user, pattern)

    async def search_global_foods(self, pattern):
        self.searches.append(("global", pattern))
        return self._hits(self.global_, pattern)

    async def key_nutrient_count(self, ref):
        self.count_calls += 1
        return self.coverage.get(ref.key, 0)


@pytest.mark.asyncio
async def test_match_fans_out_four_queries_and_dedups():
    store = FakeStore(
        user=[cand("Chicken breast, grilled", 0, user_food_id=5)],
        global_=[cand("Chicken breast", 0, food_id=1), cand("Chicken thigh", 0, food_id=2)],
        coverage={("user", 5): 10, ("global", 1): 40, ("global", 2): 45},
    )
    result = await FoodMatcher(store).match("u1", "Chicken Breast")

    assert sorted(store.searches) == [
        ("global", "%chicken breast%"),
        ("global", "%chicken%"),
        ("user", "%chicken breast%"),
        ("user", "%chicken%"),
    ]
    # exact name first
    assert (result.food_id, result.user_food_id, result.auto_matched) == (1, None, True)
    assert store.count_calls == 3


@pytest.mark.asyncio
async def test_second_lookup_of_same_name_hits_cache():
    store = FakeStore(global_=[cand("Banana", 0, food_id=1)], coverage={("global", 1): 12})
    matcher = FoodMatcher(store, cache={})

    first = await matcher.match("u1", "banana")
    searches = len(store.searches)
    second = await matcher.match("u1", "  BANANA!! ")

    assert second is first
    assert len(store.searches) == searches


@pytest.mark.asyncio
async def test_empty_name_and_no_survivors_return_none():
    store = FakeStore(global_=[cand("Water", 0, food_id=1)])
    matcher = FoodMatcher(store)
    assert await matcher.match("u1", "  ") is None
    assert store.searches == []
    assert await matcher.match("u1", "water") is None


@pytest.mark.asyncio
async def test_exclude_skips_current_food():
    store = FakeStore(
        global_=[cand("Apple", 0, food_id=1), cand("Apple, raw", 0, food_id=2)],
        coverage={("global", 1): 6, ("global", 2): 40},
    )
    matcher = FoodMatcher(store)
    assert (await matcher.match(None, "apple")).food_id == 1
    assert (await matcher.match(None, "apple", exclude=FoodRef(food_id=1))).food_id == 2


@pytest.mark.asyncio
async def test_anonymous_match_only_searches_global():
    store = FakeStore(global_=[cand("Egg", 0, food_id=3)], coverage={("global", 3): 20})
    await FoodMatcher(store).match(None, "egg")
    assert {scope for scope, _ in store.searches} == {"global"}
    # single token: phrase and token pattern coincide
    assert store.searches == [("global", "%egg%")]
