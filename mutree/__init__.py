"""
mutree - sequence reconstruction over lineage trees of mutations

A root sequence diverges along the branches of a tree; every node records
the point substitutions, insertions and deletions separating it from its
parent. mutree rebuilds the full sequence at any node.

Sequence buffer: growable symbol storage with in-place and reallocating edits
Mutations: Point / Insertion / Deletion values and their apply semantics
Mutation tree: lineage reconstruction, flattening, structural queries
Lineage scripts: a small language (and CLI) for building and querying trees
"""

__version__ = "0.1.0"

from mutree.sequence import (
    AllocationFailure,
    BufferPolicy,
    DeletionMode,
    InvalidMutation,
    SequenceBuffer,
    SequenceType,
)
from mutree.mutation import (
    Deletion,
    Insertion,
    Mutation,
    MutationKind,
    Point,
    apply,
    apply_immutable,
)
from mutree.tree import MalformedTree, MutationTree, TreeNode
from mutree.compiler import compile_script
from mutree.runtime import Runtime, ExecutionResult

__all__ = [
    "AllocationFailure",
    "BufferPolicy",
    "DeletionMode",
    "InvalidMutation",
    "SequenceBuffer",
    "SequenceType",
    "Deletion",
    "Insertion",
    "Mutation",
    "MutationKind",
    "Point",
    "apply",
    "apply_immutable",
    "MalformedTree",
    "MutationTree",
    "TreeNode",
    "compile_script",
    "Runtime",
    "ExecutionResult",
]
