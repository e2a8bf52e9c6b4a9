"""
mutree Mutation Tree

A MutationTree is a root sequence plus a tree of nodes. Every node records
the mutations separating it from its parent; the sequence at any node is
rebuilt by walking its lineage from the root and applying each node's
mutations in order.

Ownership runs downward only: a node owns its children list and its
mutations, and keeps a weak reference to its parent for upward traversal.
The tree also mirrors its structure in a networkx DiGraph used for
validation and export.

Usage:
    tree = MutationTree("ATGCATGC")
    x = tree.add_child(tree.root, "X", [Point(1, "G")])
    y = tree.add_child(x, "Y", [Deletion(0, 2)])
    tree.reconstruct(y).data      # 'GCATGC'
    tree.flatten(tree.root)       # [Point(1, 'G'), Deletion(0, 2)]
"""

from __future__ import annotations

import logging
import weakref
from typing import Any, Iterable, Iterator, Optional, Union

import networkx as nx

from mutree.mutation import Mutation, apply_immutable, notation
from mutree.sequence import BufferPolicy, InvalidMutation, SequenceBuffer

logger = logging.getLogger(__name__)


class MalformedTree(Exception):
    """Tree links are inconsistent (cycle or dangling parent)."""
    def __init__(self, message: str, node: Optional[TreeNode] = None):
        node_str = f" at node {node.name!r}" if node is not None else ""
        super().__init__(f"Malformed tree{node_str}: {message}")
        self.node = node


# ============================================================================
# Tree Node
# ============================================================================

class TreeNode:
    """One branch point in the lineage.

    Attributes:
        name: Identifier, unique within its tree
        mutations: Edits relative to the parent's reconstructed sequence
        payload: Opaque caller data, owned by the node
        children: Owned child nodes, in insertion order
    """

    def __init__(
        self,
        name: str,
        mutations: Iterable[Mutation] = (),
        payload: Any = None,
        parent: Optional[TreeNode] = None,
    ) -> None:
        self.name = name
        self.mutations: list[Mutation] = list(mutations)
        self.payload = payload
        self.children: list[TreeNode] = []
        self._parent_ref = weakref.ref(parent) if parent is not None else None

    @property
    def parent(self) -> Optional[TreeNode]:
        """The parent node, or None at the root.

        Raises MalformedTree if the parent has been garbage collected.
        """
        if self._parent_ref is None:
            return None
        parent = self._parent_ref()
        if parent is None:
            raise MalformedTree("dangling parent reference", self)
        return parent

    @property
    def is_root(self) -> bool:
        return self._parent_ref is None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_internal(self) -> bool:
        return bool(self.children) and not self.is_root

    def ancestors(self) -> Iterator[TreeNode]:
        """Yield this node, its parent, and so on up to the root."""
        seen: set[int] = set()
        node: Optional[TreeNode] = self
        while node is not None:
            if id(node) in seen:
                raise MalformedTree("cycle in parent links", node)
            seen.add(id(node))
            yield node
            node = node.parent

    def depth_to_root(self) -> int:
        """0 at the root, +1 per ancestor hop."""
        return sum(1 for _ in self.ancestors()) - 1

    def iter_preorder(self) -> Iterator[TreeNode]:
        """This node, then each child's subtree in child order."""
        seen: set[int] = set()
        stack = [self]
        while stack:
            node = stack.pop()
            if id(node) in seen:
                raise MalformedTree("node reachable twice from subtree root", node)
            seen.add(id(node))
            yield node
            stack.extend(reversed(node.children))

    def edge_count(self) -> int:
        """Number of edges in the subtree rooted here."""
        return sum(len(node.children) for node in self.iter_preorder())

    def leaf_count(self) -> int:
        """Number of leaves in the subtree rooted here (a lone node is a leaf)."""
        return sum(1 for node in self.iter_preorder() if node.is_leaf)

    def flatten(self) -> list[Mutation]:
        """All mutations in the subtree, pre-order: own list, then each child's."""
        flat: list[Mutation] = []
        for node in self.iter_preorder():
            flat.extend(node.mutations)
        return flat

    def __repr__(self) -> str:
        return (
            f"<TreeNode {self.name!r} mutations={len(self.mutations)} "
            f"children={len(self.children)}>"
        )


NodeRef = Union[TreeNode, str]


# ============================================================================
# Mutation Tree
# ============================================================================

class MutationTree:
    """Root sequence plus lineage tree, with reconstruction.

    reconstruct() never mutates the root sequence or any buffer another
    branch could observe: every step goes through apply_immutable.
    """

    def __init__(
        self,
        sequence: Union[str, SequenceBuffer],
        root_name: str = "root",
        root_payload: Any = None,
        policy: Optional[BufferPolicy] = None,
    ) -> None:
        if isinstance(sequence, SequenceBuffer) and policy is None:
            self._sequence = sequence.copy()
        elif isinstance(sequence, SequenceBuffer):
            # An explicit policy replaces the buffer's own
            self._sequence = SequenceBuffer(sequence.raw, policy)
        else:
            self._sequence = SequenceBuffer(sequence, policy)
        self._root = TreeNode(root_name, payload=root_payload)
        self._nodes: dict[str, TreeNode] = {root_name: self._root}
        self._graph = nx.DiGraph()
        self._graph.add_node(root_name)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def root(self) -> TreeNode:
        return self._root

    @property
    def sequence(self) -> str:
        """The root sequence."""
        return self._sequence.data

    @property
    def policy(self) -> BufferPolicy:
        return self._sequence.policy

    def get(self, name: str) -> TreeNode:
        """Look up a node by name."""
        if name not in self._nodes:
            raise KeyError(f"Unknown node '{name}'. Known: {list(self._nodes)}")
        return self._nodes[name]

    def _resolve(self, node: NodeRef) -> TreeNode:
        if isinstance(node, TreeNode):
            if self._nodes.get(node.name) is not node:
                raise KeyError(f"Node {node.name!r} does not belong to this tree")
            return node
        return self.get(node)

    @property
    def names(self) -> list[str]:
        return [node.name for node in self]

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TreeNode]:
        return self._root.iter_preorder()

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    def add_child(
        self,
        parent: NodeRef,
        name: str,
        mutations: Iterable[Mutation] = (),
        payload: Any = None,
    ) -> TreeNode:
        """Attach a new node under `parent`.

        The mutation list is stored as given. It is only checked against a
        sequence when something reconstructs this node or a descendant.
        """
        parent_node = self._resolve(parent)
        if name in self._nodes:
            raise ValueError(f"Node name {name!r} already used")
        child = TreeNode(name, mutations, payload=payload, parent=parent_node)
        parent_node.children.append(child)
        self._nodes[name] = child
        self._graph.add_edge(parent_node.name, name)
        logger.debug(
            "added node %s under %s with %d mutations",
            name, parent_node.name, len(child.mutations),
        )
        return child

    # ------------------------------------------------------------------
    # Reconstruction
    # ------------------------------------------------------------------

    def lineage(self, node: NodeRef) -> list[TreeNode]:
        """Ancestor chain from the root to `node`, inclusive, root first."""
        target = self._resolve(node)
        chain = list(target.ancestors())
        if chain[-1] is not self._root:
            raise MalformedTree("lineage does not reach the tree root", chain[-1])
        chain.reverse()
        return chain

    def reconstruct(self, node: NodeRef) -> SequenceBuffer:
        """Rebuild the full sequence at `node`.

        Each mutation is resolved against the buffer produced by everything
        before it on the path, including earlier mutations of the same node.

        Raises:
            InvalidMutation: a mutation does not fit the running sequence.
                The message names the node and the mutation's index.
        """
        current = self._sequence
        for step in self.lineage(node):
            for index, mutation in enumerate(step.mutations):
                try:
                    current = apply_immutable(current, mutation)
                except InvalidMutation as e:
                    raise InvalidMutation(
                        f"Node {step.name!r} mutation #{index}: {e}",
                        mutation=mutation,
                        length=current.length,
                    ) from e
        if current is self._sequence:
            current = current.copy()
        logger.debug("reconstructed %s (length %d)", self._resolve(node).name, current.length)
        return current

    def trace(self, node: NodeRef) -> list[dict[str, Any]]:
        """Step-by-step provenance of reconstruct(node).

        The first entry describes the root sequence; every following entry
        describes one applied mutation. Stops by raising on an invalid
        mutation, like reconstruct().
        """
        current = self._sequence
        steps: list[dict[str, Any]] = [{
            "step": 0,
            "node": self._root.name,
            "index": None,
            "mutation": None,
            "length": current.length,
            "hash": current.hash[:16],
        }]
        for lineage_node in self.lineage(node):
            for index, mutation in enumerate(lineage_node.mutations):
                try:
                    current = apply_immutable(current, mutation)
                except InvalidMutation as e:
                    raise InvalidMutation(
                        f"Node {lineage_node.name!r} mutation #{index}: {e}",
                        mutation=mutation,
                        length=current.length,
                    ) from e
                steps.append({
                    "step": len(steps),
                    "node": lineage_node.name,
                    "index": index,
                    "mutation": notation(mutation),
                    "length": current.length,
                    "hash": current.hash[:16],
                })
        return steps

    def reconstruct_all(self, leaves_only: bool = False) -> dict[str, str]:
        """Sequences for every node (or every leaf), keyed by name, pre-order."""
        return {
            node.name: self.reconstruct(node).data
            for node in self
            if node.is_leaf or not leaves_only
        }

    # ------------------------------------------------------------------
    # Structural queries
    # ------------------------------------------------------------------

    def flatten(self, node: Optional[NodeRef] = None) -> list[Mutation]:
        """Pre-order mutation list of a subtree. For reporting only."""
        return self._resolve(node if node is not None else self._root).flatten()

    def edge_count(self, node: Optional[NodeRef] = None) -> int:
        return self._resolve(node if node is not None else self._root).edge_count()

    def leaf_count(self, node: Optional[NodeRef] = None) -> int:
        return self._resolve(node if node is not None else self._root).leaf_count()

    def depth_to_root(self, node: NodeRef) -> int:
        return self._resolve(node).depth_to_root()

    # ------------------------------------------------------------------
    # Export & validation
    # ------------------------------------------------------------------

    def to_newick(self, node: Optional[NodeRef] = None) -> str:
        """Newick string of a subtree.

        Branch lengths are mutation counts; the subtree root carries none.
        """
        top = self._resolve(node if node is not None else self._root)
        rendered: dict[int, str] = {}
        # Children before parents so each label can embed its subtree
        for current in reversed(list(top.iter_preorder())):
            label = _newick_label(current.name)
            if current.children:
                inner = ",".join(rendered.pop(id(c)) for c in current.children)
                label = f"({inner}){label}"
            if current is not top:
                label = f"{label}:{len(current.mutations)}"
            rendered[id(current)] = label
        return rendered[id(top)] + ";"

    def to_graph(self) -> nx.DiGraph:
        """A copy of the structure as a networkx DiGraph.

        Nodes carry `mutations` (count) and `depth` attributes.
        """
        graph = self._graph.copy()
        for node in self:
            graph.nodes[node.name]["mutations"] = len(node.mutations)
            graph.nodes[node.name]["depth"] = node.depth_to_root()
        return graph

    def validate(self) -> None:
        """Check that node links and the structure graph agree.

        Raises MalformedTree on cycles, dangling parents, or nodes whose
        parent link disagrees with the parent's children list.
        """
        if not nx.is_arborescence(self._graph):
            raise MalformedTree("structure graph is not an arborescence")
        visited = 0
        for node in self:
            visited += 1
            for child in node.children:
                if child.parent is not node:
                    raise MalformedTree(f"child {child.name!r} points at another parent", node)
                if not self._graph.has_edge(node.name, child.name):
                    raise MalformedTree(f"edge to {child.name!r} missing from graph", node)
        if visited != len(self._nodes):
            raise MalformedTree(
                f"{len(self._nodes) - visited} registered node(s) unreachable from root"
            )

    def __repr__(self) -> str:
        return (
            f"<MutationTree: root={len(self._sequence)} symbols, "
            f"{len(self._nodes)} nodes, {self.leaf_count()} leaves>"
        )


def _newick_label(name: str) -> str:
    if any(ch in name for ch in " ():;,[]'\t\n"):
        return "'" + name.replace("'", "''") + "'"
    return name
