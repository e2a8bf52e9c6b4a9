"""
mutree Sequence Buffer

A SequenceBuffer owns a growable array of symbols and exposes the edit
primitives that mutations are built on: point substitution, insertion and
deletion. Storage is a bytearray whose size is the buffer's capacity; only
the first `length` bytes are live symbols.

Usage:
    buf = SequenceBuffer("ATGCATGC")
    buf.point_mutate(1, "G")
    buf.insert(8, "TTT")
    buf.delete(0, 2, mode=DeletionMode.EXACT)
    print(buf.data, buf.length, buf.capacity)
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from mutree.mutation import Mutation


class InvalidMutation(Exception):
    """A mutation does not fit the buffer state it is applied to."""
    def __init__(self, message: str, mutation: object = None, length: Optional[int] = None):
        super().__init__(message)
        self.mutation = mutation
        self.length = length


class AllocationFailure(Exception):
    """Buffer growth could not be satisfied."""
    def __init__(self, requested: int, limit: Optional[int] = None):
        limit_str = f" (limit {limit})" if limit is not None else ""
        super().__init__(f"Cannot grow buffer to {requested} symbols{limit_str}")
        self.requested = requested
        self.limit = limit


# ============================================================================
# Buffer Policy
# ============================================================================

class DeletionMode(Enum):
    """How delete() treats storage after removing symbols."""
    COMPACT = "compact"  # Shift left, keep capacity
    EXACT = "exact"      # Reallocate to the exact new size


@dataclass(frozen=True)
class BufferPolicy:
    """Storage and validation settings shared by buffers.

    Attributes:
        growth_factor: Capacity multiplier used when an insert overflows
        max_capacity: Hard ceiling on capacity, None for unbounded
        deletion_mode: Default variant used by delete()
        alphabet: Allowed symbols, None to accept any single ASCII character
    """
    growth_factor: float = 2.0
    max_capacity: Optional[int] = None
    deletion_mode: DeletionMode = DeletionMode.COMPACT
    alphabet: Optional[str] = None

    def __post_init__(self) -> None:
        if self.growth_factor < 1.0:
            raise ValueError(f"growth_factor must be >= 1.0, got {self.growth_factor}")
        if self.max_capacity is not None and self.max_capacity < 0:
            raise ValueError(f"max_capacity must be >= 0, got {self.max_capacity}")

    def next_capacity(self, current: int, required: int) -> int:
        """Capacity to allocate so that at least `required` symbols fit."""
        grown = math.ceil(current * self.growth_factor) if current else required
        return max(required, grown)


DEFAULT_POLICY = BufferPolicy()


# ============================================================================
# Sequence Typing
# ============================================================================

class SequenceType(Enum):
    """Broad class of a symbol sequence."""
    PROTEIN = "protein"
    RNA = "rna"
    DNA = "dna"
    DNA_OR_RNA = "dna_or_rna"
    OTHER = "other"


_NUCLEOTIDES = set("ACGTUN")
_AMINO_ACIDS = set("ACDEFGHIKLMNPQRSTVWYBZX*")


def detect_type(symbols: str) -> SequenceType:
    """Classify a sequence by the symbols it uses (case-insensitive).

    A sequence made only of A/C/G/N is ambiguous between DNA and RNA.
    """
    alphabet = set(symbols.upper())
    if not alphabet:
        return SequenceType.OTHER
    if alphabet <= _NUCLEOTIDES:
        has_t = "T" in alphabet
        has_u = "U" in alphabet
        if has_t and has_u:
            return SequenceType.OTHER
        if has_t:
            return SequenceType.DNA
        if has_u:
            return SequenceType.RNA
        return SequenceType.DNA_OR_RNA
    if alphabet <= _AMINO_ACIDS:
        return SequenceType.PROTEIN
    return SequenceType.OTHER


# ============================================================================
# The Buffer
# ============================================================================

def _encode(symbols: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(symbols, str):
        try:
            return symbols.encode("ascii")
        except UnicodeEncodeError:
            raise InvalidMutation(f"Symbols must be ASCII: {symbols!r}")
    if isinstance(symbols, (bytes, bytearray)):
        return bytes(symbols)
    raise TypeError(f"Cannot build a sequence from {type(symbols)}")


class SequenceBuffer:
    """A growable symbol array with in-place and reallocating edits.

    Invariant: capacity >= length. Bytes past `length` are spare storage and
    never part of the sequence.
    """

    def __init__(
        self,
        symbols: Union[str, bytes, bytearray] = "",
        policy: Optional[BufferPolicy] = None,
    ) -> None:
        self._policy = policy or DEFAULT_POLICY
        data = _encode(symbols)
        self._check_alphabet(data)
        self._store = bytearray(data)
        self._length = len(data)

    @classmethod
    def _from_store(cls, store: bytearray, length: int, policy: BufferPolicy) -> SequenceBuffer:
        buf = cls.__new__(cls)
        buf._policy = policy
        buf._store = store
        buf._length = length
        return buf

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def data(self) -> str:
        """The live symbols as a string."""
        return self._store[:self._length].decode("ascii")

    @property
    def raw(self) -> bytes:
        return bytes(self._store[:self._length])

    @property
    def length(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return len(self._store)

    @property
    def policy(self) -> BufferPolicy:
        return self._policy

    @property
    def hash(self) -> str:
        """SHA-256 of the live symbols."""
        return hashlib.sha256(self._store[:self._length]).hexdigest()

    @property
    def sequence_type(self) -> SequenceType:
        return detect_type(self.data)

    # ------------------------------------------------------------------
    # Storage management
    # ------------------------------------------------------------------

    def reserve(self, required: int) -> None:
        """Ensure capacity for at least `required` symbols.

        Raises AllocationFailure without touching the buffer if the policy
        ceiling would be exceeded or the interpreter runs out of memory.
        """
        current = len(self._store)
        if required <= current:
            return
        limit = self._policy.max_capacity
        if limit is not None and required > limit:
            raise AllocationFailure(required, limit)
        target = self._policy.next_capacity(current, required)
        if limit is not None:
            target = min(target, limit)
        try:
            self._store.extend(bytes(target - current))
        except MemoryError:
            raise AllocationFailure(target, limit)

    def shrink_to_fit(self) -> None:
        """Release spare capacity."""
        if len(self._store) != self._length:
            self._store = bytearray(self._store[:self._length])

    def copy(self) -> SequenceBuffer:
        """An independent buffer holding the same symbols at exact capacity."""
        return SequenceBuffer._from_store(
            bytearray(self._store[:self._length]), self._length, self._policy,
        )

    # ------------------------------------------------------------------
    # Edit primitives
    # ------------------------------------------------------------------

    def point_mutate(self, pos: int, symbol: str) -> None:
        """Replace the symbol at `pos`. O(1), in place."""
        if not 0 <= pos < self._length:
            raise InvalidMutation(
                f"Point position {pos} outside sequence of length {self._length}",
                length=self._length,
            )
        encoded = _encode(symbol)
        if len(encoded) != 1:
            raise InvalidMutation(f"Point mutation needs one symbol, got {symbol!r}")
        self._check_alphabet(encoded)
        self._store[pos] = encoded[0]

    def insert(self, pos: int, subsequence: str) -> None:
        """Insert `subsequence` before `pos`, shifting trailing symbols right.

        pos == length appends.
        """
        if not 0 <= pos <= self._length:
            raise InvalidMutation(
                f"Insertion position {pos} outside sequence of length {self._length}",
                length=self._length,
            )
        encoded = _encode(subsequence)
        self._check_alphabet(encoded)
        n = len(encoded)
        if n == 0:
            return
        end = self._length
        self.reserve(end + n)
        self._store[pos + n:end + n] = self._store[pos:end]
        self._store[pos:pos + n] = encoded
        self._length = end + n

    def delete(self, pos: int, count: int, mode: Optional[DeletionMode] = None) -> None:
        """Remove `count` symbols starting at `pos`.

        COMPACT keeps capacity and shifts the tail left. EXACT rebuilds the
        storage at the new length.
        """
        if pos < 0 or count < 0 or pos + count > self._length:
            raise InvalidMutation(
                f"Deletion of {count} at {pos} outside sequence of length {self._length}",
                length=self._length,
            )
        if count == 0:
            return
        mode = mode or self._policy.deletion_mode
        end = self._length
        if mode == DeletionMode.COMPACT:
            self._store[pos:end - count] = self._store[pos + count:end]
            self._length = end - count
        else:
            self._store = self._store[:pos] + self._store[pos + count:end]
            self._length = len(self._store)

    def segment(self, pos: int, count: int) -> str:
        """Symbols in [pos, pos + count) as a string."""
        if pos < 0 or count < 0 or pos + count > self._length:
            raise IndexError(f"Slice [{pos}:{pos + count}] outside length {self._length}")
        return self._store[pos:pos + count].decode("ascii")

    def apply(self, mutation: Mutation, mode: Optional[DeletionMode] = None) -> None:
        """Apply a mutation in place."""
        from mutree.mutation import apply
        apply(self, mutation, mode)

    def apply_immutable(self, mutation: Mutation) -> SequenceBuffer:
        """Apply a mutation to a copy, leaving this buffer untouched."""
        from mutree.mutation import apply_immutable
        return apply_immutable(self, mutation)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_alphabet(self, encoded: bytes) -> None:
        alphabet = self._policy.alphabet
        if alphabet is None:
            return
        bad = set(encoded.decode("ascii")) - set(alphabet)
        if bad:
            raise InvalidMutation(
                f"Symbols {''.join(sorted(bad))!r} not in alphabet {alphabet!r}"
            )

    def __getitem__(self, index: Union[int, slice]) -> str:
        return self.data[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SequenceBuffer):
            return self.raw == other.raw
        if isinstance(other, str):
            return self.data == other
        return NotImplemented

    __hash__ = None  # mutable

    def __str__(self) -> str:
        return self.data

    def __repr__(self) -> str:
        preview = self.data if self._length <= 24 else self.data[:21] + "..."
        return f"<SequenceBuffer: {preview!r} len={self._length} cap={self.capacity}>"

    def __len__(self) -> int:
        return self._length
