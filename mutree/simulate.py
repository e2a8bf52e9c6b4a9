"""
mutree Simulation

Grows random lineage trees: a root sequence diverges level by level, and
every new branch receives a few randomly generated mutations expressed in
its parent's coordinate frame.

Randomness always comes from an explicit random.Random passed in by the
caller, so a seed reproduces a run exactly.

- MutationGenerator: interface producing one mutation for a sequence length
- UniformMutationGenerator: uniform positions and symbols, weighted kinds
- LineageSimulator: the driver; owns retry when a generator misfires

Usage:
    config = SimulationConfig(children=2, depth=3, mutations_per_branch=4, seed=7)
    result = LineageSimulator(config).simulate()
    result.tree.reconstruct_all(leaves_only=True)
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from mutree.mutation import (
    Deletion,
    Insertion,
    Mutation,
    MutationKind,
    Point,
    check,
    length_delta,
)
from mutree.sequence import InvalidMutation
from mutree.tree import MutationTree, TreeNode

logger = logging.getLogger(__name__)

DNA_ALPHABET = "ATGC"
RNA_ALPHABET = "AUGC"


class SimulationError(Exception):
    """The generator could not produce a valid mutation within the retry budget."""
    def __init__(self, message: str, node: str = "", attempts: int = 0):
        super().__init__(message)
        self.node = node
        self.attempts = attempts


def random_sequence(
    rng: random.Random,
    length: int,
    alphabet: str = DNA_ALPHABET,
    weights: Optional[Sequence[float]] = None,
) -> str:
    """`length` symbols drawn from `alphabet`.

    Draws are uniform unless `weights` gives a relative weight per symbol,
    e.g. weights=(0.4, 0.4, 0.1, 0.1) for an AT-rich DNA sequence.
    """
    if length < 0:
        raise ValueError(f"length must be >= 0, got {length}")
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    if weights is None:
        return "".join(rng.choice(alphabet) for _ in range(length))
    if len(weights) != len(alphabet) or any(w < 0 for w in weights) or not any(weights):
        raise ValueError(
            f"weights must be {len(alphabet)} non-negative numbers, not all zero, got {weights}"
        )
    return "".join(rng.choices(alphabet, weights=weights, k=length))


# ============================================================================
# Generators
# ============================================================================

class MutationGenerator(ABC):
    """Source of random mutations.

    next_mutation() receives the length of the sequence the mutation will be
    applied to and should return a mutation valid for it. The driver checks
    anyway and asks again if it is not.
    """

    @abstractmethod
    def next_mutation(self, rng: random.Random, current_length: int) -> Mutation:
        ...


class UniformMutationGenerator(MutationGenerator):
    """Uniform positions and symbols with weighted mutation kinds.

    Args:
        alphabet: Symbols used for substitutions and inserted runs
        weights: Relative weight of (point, insertion, deletion)
        max_indel: Longest insertion or deletion produced
    """

    def __init__(
        self,
        alphabet: str = DNA_ALPHABET,
        weights: tuple[float, float, float] = (0.7, 0.15, 0.15),
        max_indel: int = 3,
    ) -> None:
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        if len(weights) != 3 or any(w < 0 for w in weights) or not any(weights):
            raise ValueError(f"weights must be three non-negative numbers, got {weights}")
        if max_indel < 1:
            raise ValueError(f"max_indel must be >= 1, got {max_indel}")
        self.alphabet = alphabet
        self.weights = weights
        self.max_indel = max_indel

    def next_mutation(self, rng: random.Random, current_length: int) -> Mutation:
        kinds = [MutationKind.POINT, MutationKind.INSERTION, MutationKind.DELETION]
        weights = list(self.weights)
        if current_length == 0:
            # Only insertions fit an empty sequence
            weights = [0.0, 1.0, 0.0]
        kind = rng.choices(kinds, weights=weights)[0]

        if kind == MutationKind.POINT:
            return Point(rng.randrange(current_length), rng.choice(self.alphabet))
        if kind == MutationKind.INSERTION:
            size = rng.randint(1, self.max_indel)
            return Insertion(
                rng.randint(0, current_length),
                random_sequence(rng, size, self.alphabet),
            )
        position = rng.randrange(current_length)
        count = rng.randint(1, min(self.max_indel, current_length - position))
        return Deletion(position, count)

    def __repr__(self) -> str:
        return (
            f"<UniformMutationGenerator alphabet={self.alphabet!r} "
            f"weights={self.weights} max_indel={self.max_indel}>"
        )


# ============================================================================
# Driver
# ============================================================================

@dataclass(frozen=True)
class SimulationConfig:
    """Shape of a simulated tree.

    Attributes:
        children: Children added under every node of the previous level
        depth: Number of levels below the root
        mutations_per_branch: Mutations recorded on every new node
        max_attempts: Generator calls allowed per mutation before giving up
        root_length: Length of the random root when none is supplied
        seed: Seed for the default random.Random
    """
    children: int = 2
    depth: int = 3
    mutations_per_branch: int = 3
    max_attempts: int = 10
    root_length: int = 60
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("children", "depth", "mutations_per_branch", "root_length"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")


@dataclass
class SimulationResult:
    """A simulated tree with run statistics."""
    tree: MutationTree
    seed: Optional[int]
    generated: int = 0
    retries: int = 0

    @property
    def leaves(self) -> list[TreeNode]:
        return [node for node in self.tree if node.is_leaf]

    def __repr__(self) -> str:
        return (
            f"<SimulationResult: {len(self.tree)} nodes, "
            f"{self.generated} mutations, {self.retries} retries>"
        )


class LineageSimulator:
    """Grows a MutationTree breadth-first from a root sequence.

    Every node's mutations are generated against the running length of its
    parent's sequence, so the resulting tree always reconstructs.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        generator: Optional[MutationGenerator] = None,
    ) -> None:
        self.config = config or SimulationConfig()
        self.generator = generator or UniformMutationGenerator()

    def simulate(
        self,
        root_sequence: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> SimulationResult:
        """Run one simulation.

        Args:
            root_sequence: Root symbols; random of `root_length` if omitted
            rng: Random source; random.Random(config.seed) if omitted. The
                result's seed is None when a caller-supplied rng drove the run.
        """
        config = self.config
        seed = config.seed if rng is None else None
        rng = rng or random.Random(config.seed)
        if root_sequence is None:
            alphabet = getattr(self.generator, "alphabet", DNA_ALPHABET)
            root_sequence = random_sequence(rng, config.root_length, alphabet)

        tree = MutationTree(root_sequence)
        result = SimulationResult(tree=tree, seed=seed)
        frontier: list[tuple[TreeNode, int]] = [(tree.root, len(root_sequence))]
        counter = 0

        for level in range(1, config.depth + 1):
            next_frontier: list[tuple[TreeNode, int]] = []
            for parent, parent_length in frontier:
                for _ in range(config.children):
                    counter += 1
                    name = f"n{counter}"
                    mutations, length = self._branch(rng, name, parent_length, result)
                    child = tree.add_child(parent, name, mutations)
                    next_frontier.append((child, length))
            frontier = next_frontier
            logger.debug("level %d: %d nodes", level, len(frontier))

        logger.info(
            "simulated %d nodes, %d mutations (%d retries)",
            len(tree), result.generated, result.retries,
        )
        return result

    def _branch(
        self,
        rng: random.Random,
        name: str,
        length: int,
        result: SimulationResult,
    ) -> tuple[list[Mutation], int]:
        """Generate one node's mutations, returning them and the final length."""
        mutations: list[Mutation] = []
        for _ in range(self.config.mutations_per_branch):
            for attempt in range(1, self.config.max_attempts + 1):
                try:
                    mutation = self.generator.next_mutation(rng, length)
                    check(mutation, length)
                except InvalidMutation as e:
                    result.retries += 1
                    logger.debug("node %s attempt %d rejected: %s", name, attempt, e)
                    continue
                break
            else:
                raise SimulationError(
                    f"No valid mutation for node {name!r} (length {length}) "
                    f"after {self.config.max_attempts} attempts",
                    node=name,
                    attempts=self.config.max_attempts,
                )
            mutations.append(mutation)
            length += length_delta(mutation)
            result.generated += 1
        return mutations, length
