from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DistributionFlavor = Literal["exact", "stylized"]

SUBSHELL_LABELS = {0: "s", 1: "p", 2: "d", 3: "f", 4: "g", 5: "h"}


class InvalidQuantumStateError(ValueError):
    pass


@dataclass(frozen=True)
class QuantumState:
    """Hydrogen-like state (n, l, m) for a nucleus of charge Z."""

    n: int
    l: int
    m: int
    atomic_number: int = 1
    s: float = 0.5

    @property
    def is_valid(self) -> bool:
        return (
            self.n >= 1
            and 0 <= self.l < self.n
            and abs(self.m) <= self.l
            and self.atomic_number >= 1
            and self.has_valid_spin
        )

    @property
    def has_valid_spin(self) -> bool:
        return abs(abs(self.s) - 0.5) <= 1e-9

    def validate(self) -> QuantumState:
        if self.n < 1:
            raise InvalidQuantumStateError(f"n must be >= 1 (got n={self.n}).")
        if not 0 <= self.l < self.n:
            raise InvalidQuantumStateError(f"l must satisfy 0 <= l < n (got n={self.n}, l={self.l}).")
        if abs(self.m) > self.l:
            raise InvalidQuantumStateError(f"m must satisfy |m| <= l (got l={self.l}, m={self.m}).")
        if self.atomic_number < 1:
            raise InvalidQuantumStateError(f"Atomic number must be positive (got Z={self.atomic_number}).")
        if not self.has_valid_spin:
            raise InvalidQuantumStateError(f"Spin must be +1/2 or -1/2 (got s={self.s}).")
        return self

    @property
    def radial_key(self) -> tuple[int, int, int]:
        return (self.atomic_number, self.n, self.l)

    @property
    def angular_key(self) -> tuple[int, int]:
        return (self.l, self.m)

    @property
    def orbital_key(self) -> tuple[int, int, int, int]:
        return (self.atomic_number, self.n, self.l, self.m)

    @property
    def radial_node_count(self) -> int:
        return max(self.n - self.l - 1, 0)

    def label(self) -> str:
        return f"{self.n}{SUBSHELL_LABELS.get(self.l, '?')} (m={self.m}, Z={self.atomic_number})"

    def with_atomic_number(self, atomic_number: int) -> QuantumState:
        return QuantumState(self.n, self.l, self.m, atomic_number=int(atomic_number), s=self.s)


def state_from_mapping(data: dict, atomic_number: int | None = None) -> QuantumState:
    """Build a state from a request payload such as ``{"n": 2, "l": 1, "m": 0}``."""
    z = atomic_number if atomic_number is not None else data.get("atomic_number", data.get("Z", 1))
    return QuantumState(
        n=int(data["n"]),
        l=int(data["l"]),
        m=int(data.get("m", 0)),
        atomic_number=int(z),
        s=float(data.get("s", 0.5)),
    )


def neighbouring_states(state: QuantumState, max_n: int = 5) -> list[tuple[str, QuantumState]]:
    """Likely next states for predictive preloading, tagged with a priority."""
    found: list[tuple[str, QuantumState]] = []
    z = state.atomic_number
    n, l, m = state.n, state.l, state.m
    for other_m in range(-l, l + 1):
        if other_m != m:
            found.append(("high", QuantumState(n, l, other_m, atomic_number=z)))
    if n > 1:
        lower_l = min(l, n - 2)
        found.append(("medium", QuantumState(n - 1, lower_l, max(-lower_l, min(lower_l, m)), atomic_number=z)))
    if n < max_n:
        found.append(("medium", QuantumState(n + 1, l, m, atomic_number=z)))
    if l > 0:
        found.append(("low", QuantumState(n, l - 1, max(-(l - 1), min(l - 1, m)), atomic_number=z)))
    if l < n - 1:
        found.append(("low", QuantumState(n, l + 1, 0, atomic_number=z)))
    return found
