"""Deck generation and solution fingerprints for the memory game."""

from __future__ import annotations

import hashlib
import json
import random
import secrets
from dataclasses import dataclass
from typing import Any, Iterable, MutableSequence, Sequence, Sized, TypeVar

T = TypeVar("T")

# Nine zen card motifs; a full deck of 18 cards uses every one of them.
ZEN_CARD_TYPES = (
    "lotus",
    "bamboo",
    "tea",
    "yinyang",
    "wave",
    "mountain",
    "moon",
    "leaf",
    "bonsai",
)

Pair = tuple[str, str]


@dataclass(frozen=True, slots=True)
class GameCard:
    id: str
    type: str

    def as_dict(self) -> dict[str, str]:
        return {"id": self.id, "type": self.type}


@dataclass(frozen=True, slots=True)
class Deck:
    """A shuffled layout plus the pairing that solves it.

    Only ``cards`` is handed to the player; ``solution`` is reduced to a
    fingerprint and then dropped.
    """

    cards: tuple[GameCard, ...]
    solution: tuple[Pair, ...]

    def as_payload(self) -> list[dict[str, str]]:
        return [card.as_dict() for card in self.cards]


def normalize_pairs(claimed: Any, *, expected_pairs: int | None = None) -> tuple[Pair, ...]:
    """Reduce a claimed solution to its canonical, order-free form.

    Raises ``ValueError`` for anything that is not a list of two-card pairs
    over distinct card ids, or that does not hold exactly ``expected_pairs``
    pairs when given.
    """

    if isinstance(claimed, (str, bytes)) or not isinstance(claimed, Iterable):
        raise ValueError("Claimed result must be a list of pairs")
    if expected_pairs is not None and (not isinstance(claimed, Sized) or len(claimed) != expected_pairs):
        raise ValueError(f"Claimed result must hold {expected_pairs} pairs")
    seen: set[str] = set()
    pairs: list[Pair] = []
    for entry in claimed:
        if isinstance(entry, (str, bytes)) or not isinstance(entry, Iterable):
            raise ValueError("Each pair must list two card ids")
        members = list(entry)
        if len(members) != 2 or not all(isinstance(member, str) and member for member in members):
            raise ValueError("Each pair must list two card ids")
        first, second = sorted(members)
        if first == second or first in seen or second in seen:
            raise ValueError("Card ids may appear only once")
        seen.update((first, second))
        pairs.append((first, second))
    if not pairs:
        raise ValueError("Claimed result is empty")
    return tuple(sorted(pairs))


def solution_fingerprint(nonce: str, pairs: Any, *, expected_pairs: int | None = None) -> str:
    """One-way digest of the correct pairing, salted with the session nonce."""

    normalized = normalize_pairs(pairs, expected_pairs=expected_pairs)
    canonical = json.dumps([list(pair) for pair in normalized], separators=(",", ":"))
    digest = hashlib.sha256()
    digest.update(nonce.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(canonical.encode("utf-8"))
    return digest.hexdigest()


class DeckGenerator:
    """Builds shuffled decks from a cryptographically seeded source.

    ``rng`` defaults to :class:`secrets.SystemRandom`; tests pass a seeded
    :class:`random.Random` to make runs reproducible.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or secrets.SystemRandom()

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        """Fisher-Yates shuffle in place."""

        for index in range(len(items) - 1, 0, -1):
            swap = self._rng.randrange(index + 1)
            items[index], items[swap] = items[swap], items[index]
        return items

    def _card_ids(self, count: int) -> list[str]:
        ids: list[str] = []
        while len(ids) < count:
            candidate = f"card_{self._rng.getrandbits(48):012x}"
            if candidate not in ids:
                ids.append(candidate)
        return ids

    def generate(self, pairs: int, *, card_types: Sequence[str] = ZEN_CARD_TYPES) -> Deck:
        if not 1 <= pairs <= len(card_types):
            raise ValueError(f"Deck size must be between 1 and {len(card_types)} pairs")
        ids = self._card_ids(pairs * 2)
        cards: list[GameCard] = []
        solution: list[Pair] = []
        for index, card_type in enumerate(card_types[:pairs]):
            first, second = ids[2 * index], ids[2 * index + 1]
            cards.extend((GameCard(id=first, type=card_type), GameCard(id=second, type=card_type)))
            solution.append((first, second))
        self.shuffle(cards)
        return Deck(cards=tuple(cards), solution=normalize_pairs(solution))


__all__ = [
    "Deck",
    "DeckGenerator",
    "GameCard",
    "ZEN_CARD_TYPES",
    "normalize_pairs",
    "solution_fingerprint",
]
