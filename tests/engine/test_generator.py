from __future__ import annotations

import pytest

from batchcodes.engine import generator as generator_module
from batchcodes.engine.alphabet import matches_scheme
from batchcodes.engine.generator import generate_unique_codes


def test_generates_distinct_codes_matching_scheme() -> None:
    codes = generate_unique_codes(prefix="IFL-", code_length=6, count=200)

    assert len(codes) == 200
    assert len(set(codes)) == 200
    assert all(matches_scheme(code, prefix="IFL-", code_length=6) for code in codes)
    assert all(len(code) == len("IFL-") + 6 for code in codes)


def test_zero_count_returns_empty_list() -> None:
    assert generate_unique_codes(prefix="X-", code_length=4, count=0) == []


def test_rejects_invalid_arguments() -> None:
    with pytest.raises(ValueError):
        generate_unique_codes(prefix="X-", code_length=4, count=-1)
    with pytest.raises(ValueError):
        generate_unique_codes(prefix="X-", code_length=0, count=1)


def test_skips_codes_from_avoid_set_and_own_duplicates(monkeypatch) -> None:
    suffixes = iter(["AAAA", "AAAA", "BBBB", "CCCC", "DDDD"])
    monkeypatch.setattr(generator_module, "random_suffix", lambda length, alphabet: next(suffixes))

    codes = generate_unique_codes(
        prefix="X-",
        code_length=4,
        count=2,
        avoid={"X-BBBB"},
    )

    assert codes == ["X-AAAA", "X-CCCC"]


def test_small_alphabet_still_produces_unique_codes() -> None:
    codes = generate_unique_codes(prefix="", code_length=2, count=4, alphabet="AB")
    assert sorted(codes) == ["AA", "AB", "BA", "BB"]
