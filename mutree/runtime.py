"""
mutree Runtime Engine

Executes compiled lineage scripts (Program ASTs).

The Runtime:
1. Takes a compiled Program
2. Builds a fresh MutationTree from the ROOT/LOAD and BRANCH statements
3. Answers RECONSTRUCT/FLATTEN/STATS/NEWICK/ASSERT/EMIT statements
4. Keeps a provenance trail and collects artifacts

A failing statement stops the script; the result reports the error instead
of raising it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mutree.compiler import (
    AssertNode,
    ASTNode,
    BranchNode,
    EmitNode,
    FlattenNode,
    LexerError,
    LoadNode,
    NewickNode,
    ParseError,
    Program,
    ReconstructNode,
    RootNode,
    StatsNode,
    compile_script,
)
from mutree.mutation import notation
from mutree.reader import READERS, ReaderError, SequenceReader
from mutree.sequence import AllocationFailure, BufferPolicy, InvalidMutation
from mutree.tree import MalformedTree, MutationTree

logger = logging.getLogger(__name__)


class ScriptError(Exception):
    """A statement cannot run in the current state."""
    def __init__(self, message: str, statement: Optional[ASTNode] = None):
        op_str = f" at {type(statement).__name__}" if statement else ""
        super().__init__(f"Script error{op_str}: {message}")
        self.statement = statement


_SCRIPT_FAILURES = (
    ScriptError,
    InvalidMutation,
    AllocationFailure,
    MalformedTree,
    ReaderError,
    KeyError,
    ValueError,
    OSError,
)


@dataclass
class ExecutionState:
    """Runtime state while a script executes."""
    tree: Optional[MutationTree] = None
    # Provenance log (audit trail)
    provenance: list[dict[str, Any]] = field(default_factory=list)
    # Reconstructed sequences, flattened lists, reports
    artifacts: list[dict[str, Any]] = field(default_factory=list)
    assertions: list[dict[str, Any]] = field(default_factory=list)

    def log(self, operation: str, details: dict[str, Any]) -> None:
        """Add to provenance trail."""
        entry = {
            "step": len(self.provenance),
            "operation": operation,
            "nodes": len(self.tree) if self.tree else 0,
            **details,
        }
        self.provenance.append(entry)
        logger.debug("%s %s", operation, details)


@dataclass
class ExecutionResult:
    """The result of executing a lineage script."""
    success: bool
    state: ExecutionState
    errors: list[str] = field(default_factory=list)

    @property
    def tree(self) -> Optional[MutationTree]:
        return self.state.tree

    @property
    def artifacts(self) -> list[dict[str, Any]]:
        return self.state.artifacts

    @property
    def provenance(self) -> list[dict[str, Any]]:
        return self.state.provenance

    def sequences(self) -> dict[str, str]:
        """Node name -> sequence for every RECONSTRUCT in the script."""
        return {
            a["node"]: a["sequence"]
            for a in self.state.artifacts if a["type"] == "sequence"
        }

    def summary(self) -> str:
        lines = [
            f"Lineage script {'SUCCESS' if self.success else 'FAILED'}",
            f"  Steps: {len(self.state.provenance)}",
            f"  Nodes: {len(self.state.tree) if self.state.tree else 0}",
            f"  Artifacts: {len(self.state.artifacts)}",
            f"  Assertions: {len(self.state.assertions)} "
            f"({sum(1 for a in self.state.assertions if a['passed'])} passed)",
        ]
        if self.errors:
            lines.append(f"  Errors: {self.errors}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<ExecutionResult: {'OK' if self.success else 'FAIL'} steps={len(self.state.provenance)}>"


class Runtime:
    """Lineage script execution engine.

    Usage:
        runtime = Runtime()
        result = runtime.run(source)
        result.sequences()

    Args:
        policy: Buffer policy for the root sequence of every tree built
        readers: Reader registry used by LOAD; defaults to mutree.reader.READERS
        base_dir: Directory that relative LOAD/EMIT paths resolve against
    """

    def __init__(
        self,
        policy: Optional[BufferPolicy] = None,
        readers: Optional[dict[str, SequenceReader]] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        self._policy = policy
        self._readers = readers if readers is not None else READERS
        self._base_dir = base_dir

    def execute(self, program: Program) -> ExecutionResult:
        """Execute a compiled Program."""
        state = ExecutionState()
        errors: list[str] = []

        for statement in program.statements:
            try:
                self._execute_statement(statement, state)
            except _SCRIPT_FAILURES as e:
                message = str(e) if isinstance(e, ScriptError) else f"{type(e).__name__}: {e}"
                errors.append(message)
                state.log("ERROR", {"error": message})
                return ExecutionResult(success=False, state=state, errors=errors)

        return ExecutionResult(success=True, state=state, errors=errors)

    def run(self, source: str) -> ExecutionResult:
        """Compile and execute lineage script text.

        Lexer and parser errors are reported as a failed result.
        """
        try:
            program = compile_script(source)
        except (LexerError, ParseError) as e:
            state = ExecutionState()
            state.log("ERROR", {"error": str(e)})
            return ExecutionResult(success=False, state=state, errors=[str(e)])
        return self.execute(program)

    def _execute_statement(self, statement: ASTNode, state: ExecutionState) -> None:
        """Dispatch to the appropriate handler."""
        handlers = {
            RootNode: self._exec_root,
            LoadNode: self._exec_load,
            BranchNode: self._exec_branch,
            ReconstructNode: self._exec_reconstruct,
            FlattenNode: self._exec_flatten,
            AssertNode: self._exec_assert,
            StatsNode: self._exec_stats,
            NewickNode: self._exec_newick,
            EmitNode: self._exec_emit,
        }

        handler = handlers.get(type(statement))
        if handler is None:
            raise ScriptError(f"No handler for {type(statement).__name__}", statement)
        handler(statement, state)

    def _require_tree(self, statement: ASTNode, state: ExecutionState) -> MutationTree:
        if state.tree is None:
            raise ScriptError("No root sequence. Use ROOT or LOAD first.", statement)
        return state.tree

    def _path(self, name: str) -> Path:
        path = Path(name)
        if self._base_dir is not None and not path.is_absolute():
            path = self._base_dir / path
        return path

    # ------------------------------------------------------------------
    # Statement Handlers
    # ------------------------------------------------------------------

    def _start_tree(self, sequence: str, statement: ASTNode, state: ExecutionState) -> None:
        if state.tree is not None:
            raise ScriptError("Root sequence already set", statement)
        name = statement.kwargs.get("name", "root")
        state.tree = MutationTree(sequence, root_name=name, policy=self._policy)

    def _exec_root(self, statement: RootNode, state: ExecutionState) -> None:
        """ROOT "<symbols>" [name=...]"""
        self._start_tree(statement.sequence, statement, state)
        state.log("ROOT", {"length": len(statement.sequence)})

    def _exec_load(self, statement: LoadNode, state: ExecutionState) -> None:
        """LOAD "<path>" [index=N] [reader=raw|lines] [name=...]"""
        reader_name = statement.kwargs.get("reader", "lines")
        if reader_name not in self._readers:
            raise ScriptError(
                f"Unknown reader '{reader_name}'. Registered: {list(self._readers)}",
                statement,
            )
        try:
            index = int(statement.kwargs.get("index", "0"))
        except ValueError:
            raise ScriptError(f"Bad index: {statement.kwargs['index']!r}", statement)
        sequence = self._readers[reader_name].read(self._path(statement.source), index)
        self._start_tree(sequence, statement, state)
        state.log("LOAD", {
            "source": statement.source,
            "reader": reader_name,
            "index": index,
            "length": len(sequence),
        })

    def _exec_branch(self, statement: BranchNode, state: ExecutionState) -> None:
        """BRANCH <name> FROM <parent> [payload=...] followed by mutations"""
        tree = self._require_tree(statement, state)
        if statement.parent not in tree:
            raise ScriptError(f"Unknown parent '{statement.parent}'", statement)
        tree.add_child(
            statement.parent,
            statement.name,
            statement.mutations,
            payload=statement.kwargs.get("payload"),
        )
        state.log("BRANCH", {
            "node": statement.name,
            "parent": statement.parent,
            "mutations": len(statement.mutations),
        })

    def _exec_reconstruct(self, statement: ReconstructNode, state: ExecutionState) -> None:
        """RECONSTRUCT <name> [trace=true]"""
        tree = self._require_tree(statement, state)
        buffer = tree.reconstruct(statement.name)
        artifact: dict[str, Any] = {
            "type": "sequence",
            "node": statement.name,
            "sequence": buffer.data,
            "length": buffer.length,
            "sequence_type": buffer.sequence_type.value,
        }
        if statement.kwargs.get("trace", "").lower() in ("1", "true", "yes"):
            artifact["trace"] = tree.trace(statement.name)
        state.artifacts.append(artifact)
        state.log("RECONSTRUCT", {
            "node": statement.name,
            "length": buffer.length,
            "hash": buffer.hash[:16],
        })

    def _exec_flatten(self, statement: FlattenNode, state: ExecutionState) -> None:
        """FLATTEN [name]"""
        tree = self._require_tree(statement, state)
        name = statement.name or tree.root.name
        flat = tree.flatten(name)
        state.artifacts.append({
            "type": "mutations",
            "node": name,
            "mutations": [notation(m) for m in flat],
        })
        state.log("FLATTEN", {"node": name, "count": len(flat)})

    def _exec_assert(self, statement: AssertNode, state: ExecutionState) -> None:
        """ASSERT <name> [sequence=...] [length=N] [type=dna|rna|...]"""
        tree = self._require_tree(statement, state)
        buffer = tree.reconstruct(statement.name)
        checks: dict[str, Any] = {}

        for key, expected in statement.kwargs.items():
            if key == "sequence":
                checks[key] = buffer.data == expected
            elif key == "length":
                try:
                    checks[key] = buffer.length == int(expected)
                except ValueError:
                    raise ScriptError(f"Bad length: {expected!r}", statement)
            elif key == "type":
                checks[key] = buffer.sequence_type.value == expected.lower()
            else:
                raise ScriptError(f"Unknown assertion '{key}'", statement)

        passed = all(checks.values())
        details = {"node": statement.name, "checks": checks, "actual_length": buffer.length}
        state.assertions.append({"passed": passed, **details})
        state.log("ASSERT", {"passed": passed, **details})

        if not passed:
            failed = [k for k, ok in checks.items() if not ok]
            raise ScriptError(
                f"Assertion failed on {statement.name!r}: {failed} "
                f"(actual {buffer.data!r})",
                statement,
            )

    def _exec_stats(self, statement: StatsNode, state: ExecutionState) -> None:
        """STATS: structural summary of the whole tree"""
        tree = self._require_tree(statement, state)
        report = {
            "type": "stats",
            "nodes": len(tree),
            "edges": tree.edge_count(),
            "leaves": tree.leaf_count(),
            "mutations": len(tree.flatten()),
            "max_depth": max(tree.depth_to_root(node) for node in tree),
            "root_length": len(tree.sequence),
        }
        state.artifacts.append(report)
        state.log("STATS", {k: v for k, v in report.items() if k != "type"})

    def _exec_newick(self, statement: NewickNode, state: ExecutionState) -> None:
        """NEWICK [name]"""
        tree = self._require_tree(statement, state)
        newick = tree.to_newick(statement.name)
        state.artifacts.append({"type": "newick", "node": statement.name, "newick": newick})
        state.log("NEWICK", {"node": statement.name or tree.root.name})

    def _exec_emit(self, statement: EmitNode, state: ExecutionState) -> None:
        """EMIT <name> ["path"]: output a reconstructed sequence"""
        tree = self._require_tree(statement, state)
        buffer = tree.reconstruct(statement.name)
        artifact: dict[str, Any] = {
            "type": "emit",
            "node": statement.name,
            "sequence": buffer.data,
        }
        if statement.target:
            path = self._path(statement.target)
            path.write_text(buffer.data + "\n", encoding="ascii")
            artifact["written_to"] = str(path)
        state.artifacts.append(artifact)
        state.log("EMIT", {"node": statement.name, "target": statement.target})
