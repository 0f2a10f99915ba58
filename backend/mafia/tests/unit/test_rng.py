"""
Unit tests for random number generation.

Covers the Fisher-Yates shuffle contract, its uniformity (exactly, by
enumerating every randbelow path, and statistically with the real CSPRNG),
and the bounded string helper used for room codes.
"""

import itertools
from collections import Counter

import pytest

from mafia.logic.rng import fisher_yates_shuffle, random_string, secure_randbelow


def _scripted(values):
    """randbelow that replays a fixed sequence of draws."""
    it = iter(values)

    def randbelow(bound: int) -> int:
        return next(it)

    return randbelow


class TestSecureRandbelow:
    def test_stays_in_range(self):
        assert all(0 <= secure_randbelow(7) < 7 for _ in range(200))

    def test_rejects_non_positive_bound(self):
        with pytest.raises(ValueError, match="bound must be positive"):
            secure_randbelow(0)


class TestFisherYatesShuffle:
    def test_returns_permutation_and_leaves_input_alone(self):
        items = ["a", "b", "c", "d", "e"]
        shuffled = fisher_yates_shuffle(items)
        assert sorted(shuffled) == sorted(items)
        assert items == ["a", "b", "c", "d", "e"]

    def test_empty_and_single(self):
        assert fisher_yates_shuffle([]) == []
        assert fisher_yates_shuffle(["x"]) == ["x"]

    def test_draws_shrinking_bounds(self):
        """Iterates i from the last index down to 1, drawing randbelow(i + 1)."""
        bounds = []

        def recording(bound: int) -> int:
            bounds.append(bound)
            return 0

        fisher_yates_shuffle(list(range(5)), recording)
        assert bounds == [5, 4, 3, 2]

    def test_deterministic_with_injected_source(self):
        # i=2 swaps with 0, i=1 swaps with 1 (no-op)
        assert fisher_yates_shuffle(["a", "b", "c"], _scripted([0, 1])) == ["c", "b", "a"]

    def test_out_of_range_draw_rejected(self):
        with pytest.raises(ValueError, match="out-of-range"):
            fisher_yates_shuffle(["a", "b"], lambda bound: bound)

    def test_every_draw_path_yields_a_distinct_permutation(self):
        """Each of the n! randbelow paths maps to a different ordering, so a fair source gives a fair shuffle."""
        items = ["a", "b", "c", "d"]
        paths = itertools.product(range(4), range(3), range(2))
        results = [tuple(fisher_yates_shuffle(items, _scripted(path))) for path in paths]
        assert len(results) == 24
        assert set(results) == set(itertools.permutations(items))

    def test_csprng_shuffle_is_uniform_over_three_items(self):
        """Chi-square goodness of fit over all 3! orderings."""
        trials = 6000
        counts = Counter(tuple(fisher_yates_shuffle(["a", "b", "c"])) for _ in range(trials))
        assert set(counts) == set(itertools.permutations(["a", "b", "c"]))
        expected = trials / 6
        chi_square = sum((observed - expected) ** 2 / expected for observed in counts.values())
        # 5 degrees of freedom; 30 is far beyond the 0.1% critical value (20.5)
        assert chi_square < 30


class TestRandomString:
    def test_uses_only_alphabet(self):
        value = random_string("XYZ", 50)
        assert len(value) == 50
        assert set(value) <= set("XYZ")

    def test_injected_source(self):
        assert random_string("ABC", 4, _scripted([2, 0, 1, 2])) == "CABC"
