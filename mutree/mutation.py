"""
mutree Mutations

A Mutation is one edit to a sequence: a point substitution, an insertion or
a deletion. Each variant is a frozen dataclass; `apply()` dispatches on the
variant's type to the matching SequenceBuffer primitive.

Positions are always read in the coordinate frame of the buffer as it stands
when the mutation executes.

Notation (one mutation per line):
    POINT 1 G
    INSERT 3 ACG
    DELETE 0 2
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Union

from mutree.sequence import DeletionMode, InvalidMutation, SequenceBuffer


class MutationKind(Enum):
    """Tag of a mutation variant."""
    POINT = "point"
    INSERTION = "insertion"
    DELETION = "deletion"


def _check_position(position: int) -> None:
    if not isinstance(position, int) or isinstance(position, bool):
        raise InvalidMutation(f"Position must be an int, got {position!r}")
    if position < 0:
        raise InvalidMutation(f"Position must be >= 0, got {position}")


@dataclass(frozen=True)
class Point:
    """Substitute the symbol at `position`. Requires position < length."""
    position: int
    symbol: str

    def __post_init__(self) -> None:
        _check_position(self.position)
        if not isinstance(self.symbol, str) or len(self.symbol) != 1:
            raise InvalidMutation(f"Point symbol must be one character, got {self.symbol!r}")

    @property
    def kind(self) -> MutationKind:
        return MutationKind.POINT

    def __repr__(self) -> str:
        return f"Point({self.position}, {self.symbol!r})"


@dataclass(frozen=True)
class Insertion:
    """Insert `subsequence` before `position`. Requires position <= length."""
    position: int
    subsequence: str

    def __post_init__(self) -> None:
        _check_position(self.position)
        if not isinstance(self.subsequence, str):
            raise InvalidMutation(f"Insertion needs a string, got {self.subsequence!r}")

    @property
    def kind(self) -> MutationKind:
        return MutationKind.INSERTION

    def __repr__(self) -> str:
        return f"Insertion({self.position}, {self.subsequence!r})"


@dataclass(frozen=True)
class Deletion:
    """Remove `count` symbols from `position`. Requires position + count <= length."""
    position: int
    count: int

    def __post_init__(self) -> None:
        _check_position(self.position)
        if not isinstance(self.count, int) or isinstance(self.count, bool) or self.count < 0:
            raise InvalidMutation(f"Deletion count must be an int >= 0, got {self.count!r}")

    @property
    def kind(self) -> MutationKind:
        return MutationKind.DELETION

    def __repr__(self) -> str:
        return f"Deletion({self.position}, {self.count})"


Mutation = Union[Point, Insertion, Deletion]


# ============================================================================
# Validation
# ============================================================================

def check(mutation: Mutation, length: int) -> None:
    """Raise InvalidMutation if `mutation` cannot apply to a sequence of `length`."""
    if isinstance(mutation, Point):
        valid = mutation.position < length
    elif isinstance(mutation, Insertion):
        valid = mutation.position <= length
    elif isinstance(mutation, Deletion):
        valid = mutation.position + mutation.count <= length
    else:
        raise TypeError(f"Not a mutation: {type(mutation).__name__}")
    if not valid:
        raise InvalidMutation(
            f"{mutation!r} does not fit a sequence of length {length}",
            mutation=mutation,
            length=length,
        )


def length_delta(mutation: Mutation) -> int:
    """Change in sequence length caused by applying `mutation`."""
    if isinstance(mutation, Insertion):
        return len(mutation.subsequence)
    if isinstance(mutation, Deletion):
        return -mutation.count
    return 0


# ============================================================================
# Apply
# ============================================================================

def _apply_point(buffer: SequenceBuffer, mutation: Point, mode: Optional[DeletionMode]) -> None:
    buffer.point_mutate(mutation.position, mutation.symbol)


def _apply_insertion(buffer: SequenceBuffer, mutation: Insertion, mode: Optional[DeletionMode]) -> None:
    buffer.insert(mutation.position, mutation.subsequence)


def _apply_deletion(buffer: SequenceBuffer, mutation: Deletion, mode: Optional[DeletionMode]) -> None:
    buffer.delete(mutation.position, mutation.count, mode)


_HANDLERS: dict[type, Callable[[SequenceBuffer, Mutation, Optional[DeletionMode]], None]] = {
    Point: _apply_point,
    Insertion: _apply_insertion,
    Deletion: _apply_deletion,
}


def apply(buffer: SequenceBuffer, mutation: Mutation, mode: Optional[DeletionMode] = None) -> None:
    """Apply `mutation` to `buffer` in place.

    The buffer is left unmodified when the mutation does not fit it.

    Args:
        buffer: Target buffer
        mutation: The edit to perform
        mode: Deletion variant; defaults to the buffer policy's
    """
    handler = _HANDLERS.get(type(mutation))
    if handler is None:
        raise TypeError(f"No handler for {type(mutation).__name__}")
    check(mutation, buffer.length)
    try:
        handler(buffer, mutation, mode)
    except InvalidMutation as e:
        if e.mutation is None:
            e.mutation = mutation
        raise


def apply_immutable(buffer: SequenceBuffer, mutation: Mutation) -> SequenceBuffer:
    """Apply `mutation` to a copy of `buffer` and return the copy."""
    result = buffer.copy()
    apply(result, mutation)
    return result


def apply_all(buffer: SequenceBuffer, mutations: Iterable[Mutation]) -> SequenceBuffer:
    """Apply mutations in order, in place. Returns the buffer for chaining.

    Stops at the first invalid mutation; earlier ones stay applied.
    """
    for mutation in mutations:
        apply(buffer, mutation)
    return buffer


# ============================================================================
# Notation
# ============================================================================

def notation(mutation: Mutation) -> str:
    """One-line text form, e.g. 'INSERT 3 ACG'."""
    if isinstance(mutation, Point):
        return f"POINT {mutation.position} {mutation.symbol}"
    if isinstance(mutation, Insertion):
        return f"INSERT {mutation.position} {mutation.subsequence}"
    if isinstance(mutation, Deletion):
        return f"DELETE {mutation.position} {mutation.count}"
    raise TypeError(f"Not a mutation: {type(mutation).__name__}")


def parse_notation(text: str) -> Mutation:
    """Inverse of notation(). Keywords are case-insensitive."""
    parts = text.split()
    if len(parts) != 3:
        raise ValueError(f"Expected '<KIND> <position> <value>', got {text!r}")
    kind, pos_str, value = parts
    try:
        position = int(pos_str)
    except ValueError:
        raise ValueError(f"Bad position in {text!r}")
    kind = kind.upper()
    if kind == "POINT":
        return Point(position, value)
    if kind == "INSERT":
        return Insertion(position, value)
    if kind == "DELETE":
        try:
            return Deletion(position, int(value))
        except ValueError:
            raise ValueError(f"Bad deletion count in {text!r}")
    raise ValueError(f"Unknown mutation kind {kind!r} in {text!r}")
