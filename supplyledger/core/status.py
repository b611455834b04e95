"""
supplyledger/core/status.py

Product lifecycle stages.

A StatusScale is an ordered list of stage names. A stage's ordinal is its
position in the list. Products start at ordinal 0 and may only move to a
strictly higher ordinal; the last stage is terminal.

The default scale is Manufactured(0) -> InTransit(1) -> Delivered(2).
Deployments with more stages (quality check, customs, retail, ...) pass
their own list, from code or from configuration.
"""

from enum import IntEnum
from typing import Iterable, List, Sequence, Union


class ProductStatus(IntEnum):
    """Ordinals of the default status scale."""
    MANUFACTURED = 0
    IN_TRANSIT   = 1
    DELIVERED    = 2


DEFAULT_STATUSES = ("Manufactured", "InTransit", "Delivered")


class StatusScale:
    """
    Ordered, immutable enumeration of lifecycle stages.

        scale = StatusScale(["Manufactured", "Inspected", "Shipped", "Sold"])
        scale.resolve("shipped")   # 2
        scale.resolve(3)           # 3
        scale.name_of(1)           # "Inspected"
    """

    def __init__(self, names: Iterable[str] = DEFAULT_STATUSES) -> None:
        names = tuple(names)
        if len(names) < 2:
            raise ValueError(
                f"A status scale needs at least 2 stages, got {len(names)}"
            )
        cleaned: List[str] = []
        for name in names:
            if not isinstance(name, str) or not name.strip():
                raise ValueError(f"Stage names must be non-empty strings, got {name!r}")
            cleaned.append(name.strip())

        lowered = [n.lower() for n in cleaned]
        if len(set(lowered)) != len(lowered):
            raise ValueError(f"Stage names must be unique: {cleaned}")

        self._names:   Sequence[str] = tuple(cleaned)
        self._by_name: dict           = {n: i for i, n in enumerate(lowered)}

    @classmethod
    def default(cls) -> "StatusScale":
        return cls(DEFAULT_STATUSES)

    # ── Lookup ────────────────────────────────────────────────

    @property
    def names(self) -> Sequence[str]:
        return self._names

    @property
    def initial(self) -> int:
        return 0

    @property
    def terminal(self) -> int:
        return len(self._names) - 1

    def contains(self, ordinal) -> bool:
        return (
            isinstance(ordinal, int)
            and not isinstance(ordinal, bool)
            and 0 <= ordinal < len(self._names)
        )

    def name_of(self, ordinal: int) -> str:
        if not self.contains(ordinal):
            raise ValueError(f"No stage with ordinal {ordinal!r}")
        return self._names[ordinal]

    def resolve(self, status: Union[int, str]) -> int:
        """
        Map a stage name (case-insensitive) or ordinal to its ordinal.
        Numeric strings are treated as ordinals. Raises ValueError if the
        stage is not on this scale.
        """
        if isinstance(status, str):
            key = status.strip()
            if key.isdigit():
                return self.resolve(int(key))
            try:
                return self._by_name[key.lower()]
            except KeyError:
                raise ValueError(
                    f"Unknown stage {status!r}. Valid: {list(self._names)}"
                ) from None
        if self.contains(status):
            return int(status)
        raise ValueError(
            f"Stage ordinal {status!r} outside 0..{self.terminal}"
        )

    def is_forward(self, current: int, new: int) -> bool:
        """True if new is strictly after current."""
        return new > current

    # ── Dunder ────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self):
        return iter(self._names)

    def __eq__(self, other) -> bool:
        return isinstance(other, StatusScale) and self._names == other._names

    def __hash__(self) -> int:
        return hash(self._names)

    def __repr__(self) -> str:
        return f"StatusScale({list(self._names)})"
