from __future__ import annotations

from collections.abc import Set

from batchcodes.engine.alphabet import CODE_ALPHABET, format_code, random_suffix


def generate_unique_codes(
    *,
    prefix: str,
    code_length: int,
    count: int,
    avoid: Set[str] = frozenset(),
    alphabet: str = CODE_ALPHABET,
) -> list[str]:
    """Return ``count`` distinct codes, none of which appear in ``avoid``.

    Retries are unbounded; with at least 32**4 suffixes per prefix a
    collision streak long enough to matter is not a practical concern.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    if code_length <= 0:
        raise ValueError("code_length must be positive")

    generated: list[str] = []
    accepted: set[str] = set()
    while len(generated) < count:
        candidate = format_code(prefix, random_suffix(code_length, alphabet=alphabet))
        if candidate in avoid or candidate in accepted:
            continue
        accepted.add(candidate)
        generated.append(candidate)
    return generated
