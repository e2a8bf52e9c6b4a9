#!/usr/bin/env python3
"""
mutree: lineage tree sequence reconstruction

Command-line interface over lineage scripts.

Usage:
    mutree run <script.lin>                  Execute a lineage script
    mutree reconstruct <script.lin> <node>   Print the sequence at a node
    mutree flatten <script.lin> [node]       List all mutations in a subtree
    mutree stats <script.lin>                Structural summary of the tree
    mutree newick <script.lin> [node]        Print the tree in Newick format
    mutree simulate [options]                Grow a random lineage tree
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path

# Ensure mutree package is importable
mutree_root = Path(__file__).resolve().parent.parent
if str(mutree_root) not in sys.path:
    sys.path.insert(0, str(mutree_root))

from mutree import MutationTree, Runtime, compile_script
from mutree.compiler import LexerError, ParseError, render_script
from mutree.mutation import notation
from mutree.sequence import BufferPolicy, DeletionMode, InvalidMutation
from mutree.simulate import (
    LineageSimulator,
    SimulationConfig,
    SimulationError,
    UniformMutationGenerator,
)
from mutree.tree import MalformedTree


# ============================================================================
# Formatting helpers
# ============================================================================

class C:
    """ANSI colors."""
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    MAGENTA = "\033[35m"
    RESET = "\033[0m"

    @staticmethod
    def off():
        C.BOLD = C.DIM = C.RED = C.GREEN = C.YELLOW = ""
        C.CYAN = C.MAGENTA = C.RESET = ""


def header(text: str) -> str:
    return f"\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}\n{C.BOLD}  {text}{C.RESET}\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}"


def ok(text: str) -> str:
    return f"  {C.GREEN}✓{C.RESET} {text}"


def warn(text: str) -> str:
    return f"  {C.YELLOW}⚠{C.RESET} {text}"


def fail(text: str) -> str:
    return f"  {C.RED}✗{C.RESET} {text}"


def dim(text: str) -> str:
    return f"{C.DIM}{text}{C.RESET}"


def wrap_sequence(sequence: str, width: int = 60, indent: str = "    ") -> str:
    if not sequence:
        return f"{indent}{dim('(empty)')}"
    return "\n".join(
        f"{indent}{sequence[i:i + width]}" for i in range(0, len(sequence), width)
    )


class CommandError(Exception):
    """A command could not complete; the message is shown to the user."""


# ============================================================================
# Tree loading
# ============================================================================

def make_policy(args) -> BufferPolicy:
    mode = DeletionMode.EXACT if getattr(args, "exact", False) else DeletionMode.COMPACT
    return BufferPolicy(deletion_mode=mode)


def load_tree(args) -> MutationTree:
    """Run the script named by args.script and return the tree it builds."""
    path = Path(args.script)
    source = path.read_text(encoding="utf-8")
    runtime = Runtime(policy=make_policy(args), base_dir=path.parent)
    result = runtime.run(source)
    if not result.success or result.tree is None:
        errors = "; ".join(result.errors) or "script declares no root"
        raise CommandError(f"{path}: {errors}")
    return result.tree


# ============================================================================
# Commands
# ============================================================================

def cmd_run(args):
    """Execute a lineage script."""
    path = Path(args.script)
    source = path.read_text(encoding="utf-8")

    print(header(f"RUN: {args.script}"))

    if args.verbose:
        print(f"\n  {C.DIM}Source:{C.RESET}")
        for line in source.strip().split("\n"):
            print(f"    {C.DIM}{line}{C.RESET}")

    try:
        program = compile_script(source)
    except (LexerError, ParseError) as e:
        raise CommandError(f"Compile error: {e}")
    print(ok(f"Compiled: {len(program.statements)} statements"))

    runtime = Runtime(policy=make_policy(args), base_dir=path.parent)
    result = runtime.execute(program)

    if result.success:
        print(ok("Execution successful"))
    else:
        print(fail("Execution failed"))
        for e in result.errors:
            print(f"    {C.RED}{e}{C.RESET}")

    for artifact in result.artifacts:
        kind = artifact["type"]
        if kind == "sequence":
            print(f"\n  {C.BOLD}{artifact['node']}{C.RESET}  "
                  f"{dim(str(artifact['length']) + ' symbols, ' + artifact['sequence_type'])}")
            print(wrap_sequence(artifact["sequence"]))
        elif kind == "mutations":
            print(f"\n  {C.BOLD}Mutations under {artifact['node']}{C.RESET} ({len(artifact['mutations'])})")
            for m in artifact["mutations"]:
                print(f"    {m}")
        elif kind == "stats":
            print(f"\n  {C.BOLD}Stats{C.RESET}")
            for key in ("nodes", "edges", "leaves", "mutations", "max_depth", "root_length"):
                print(f"    {key}: {artifact[key]}")
        elif kind == "newick":
            print(f"\n  {C.BOLD}Newick{C.RESET}\n    {artifact['newick']}")
        elif kind == "emit" and "written_to" in artifact:
            print(ok(f"Wrote {artifact['node']} to {artifact['written_to']}"))

    if args.verbose:
        print(f"\n  {C.BOLD}Provenance:{C.RESET}")
        for entry in result.provenance:
            details = {k: v for k, v in entry.items() if k not in ("step", "operation")}
            print(f"    {C.DIM}[{entry['step']}]{C.RESET} {entry['operation']} {dim(str(details))}")

    if not result.success:
        sys.exit(1)


def cmd_reconstruct(args):
    """Print the reconstructed sequence at a node."""
    tree = load_tree(args)
    buffer = tree.reconstruct(args.node)

    if args.plain:
        print(buffer.data)
        return

    print(header(f"RECONSTRUCT: {args.node}"))
    lineage = " → ".join(node.name for node in tree.lineage(args.node))
    print(f"  {C.DIM}Lineage: {lineage}{C.RESET}")
    print(f"  Length: {buffer.length}  |  Type: {buffer.sequence_type.value}  |  "
          f"SHA-256: {buffer.hash[:16]}")
    print(wrap_sequence(buffer.data))

    if args.trace:
        print(f"\n  {C.BOLD}Trace{C.RESET}")
        for step in tree.trace(args.node):
            label = step["mutation"] or "(root sequence)"
            print(f"    {C.DIM}[{step['step']}]{C.RESET} {step['node']:<12} {label:<24} "
                  f"len={step['length']} {dim(step['hash'])}")

    if args.output:
        Path(args.output).write_text(buffer.data + "\n", encoding="ascii")
        print(ok(f"Saved to {args.output}"))


def cmd_flatten(args):
    """List every mutation in a subtree, pre-order."""
    tree = load_tree(args)
    name = args.node or tree.root.name
    flat = tree.flatten(name)

    if args.json:
        print(json.dumps([notation(m) for m in flat], indent=2))
        return

    print(header(f"FLATTEN: {name}"))
    if not flat:
        print(warn("No mutations in this subtree"))
        return
    for node in tree.get(name).iter_preorder():
        if not node.mutations:
            continue
        print(f"\n  {C.BOLD}{node.name}{C.RESET} {dim('depth ' + str(node.depth_to_root()))}")
        for m in node.mutations:
            print(f"    {notation(m)}")
    print(f"\n  {C.GREEN}{len(flat)} mutations{C.RESET}")


def cmd_stats(args):
    """Structural summary of a lineage tree."""
    tree = load_tree(args)

    print(header(f"STATS: {args.script}"))
    print(f"  Nodes:      {len(tree)}")
    print(f"  Edges:      {tree.edge_count()}")
    print(f"  Leaves:     {tree.leaf_count()}")
    print(f"  Mutations:  {len(tree.flatten())}")
    print(f"  Root:       {len(tree.sequence)} symbols")

    tree.validate()
    print(ok("Structure is a well-formed tree"))

    print(f"\n  {C.BOLD}Nodes{C.RESET}")
    failures = 0
    for node in tree:
        indent = "  " * node.depth_to_root()
        kind = "root" if node.is_root else "leaf" if node.is_leaf else "internal"
        try:
            length = f"len={tree.reconstruct(node).length}"
        except InvalidMutation as e:
            failures += 1
            length = f"{C.RED}invalid: {e}{C.RESET}"
        print(f"    {indent}{node.name} {dim(kind)} mutations={len(node.mutations)} {length}")

    if failures:
        print(f"\n{fail(f'{failures} node(s) do not reconstruct')}")
        sys.exit(1)


def cmd_newick(args):
    """Print the tree in Newick format."""
    tree = load_tree(args)
    print(tree.to_newick(args.node))


def cmd_simulate(args):
    """Grow a random lineage tree."""
    config = SimulationConfig(
        children=args.children,
        depth=args.depth,
        mutations_per_branch=args.mutations,
        root_length=args.length,
        seed=args.seed,
    )
    generator = UniformMutationGenerator(alphabet=args.alphabet, max_indel=args.max_indel)
    result = LineageSimulator(config, generator).simulate()
    tree = result.tree

    if args.output:
        Path(args.output).write_text(render_script(tree), encoding="utf-8")

    print(header("SIMULATE"))
    print(f"  {C.DIM}Seed: {args.seed}  |  children={args.children} depth={args.depth} "
          f"mutations/branch={args.mutations}{C.RESET}")
    print(ok(f"{len(tree)} nodes, {result.generated} mutations, {result.retries} retries"))
    print(f"\n  {C.BOLD}Root{C.RESET} ({len(tree.sequence)} symbols)")
    print(wrap_sequence(tree.sequence))

    for name, sequence in tree.reconstruct_all(leaves_only=True).items():
        print(f"\n  {C.BOLD}{name}{C.RESET} ({len(sequence)} symbols)")
        print(wrap_sequence(sequence))

    print(f"\n  {C.BOLD}Newick{C.RESET}\n    {tree.to_newick()}")
    if args.output:
        print(ok(f"Script saved to {args.output}"))


# ============================================================================
# Main
# ============================================================================

def main():
    parser = argparse.ArgumentParser(
        prog="mutree",
        description="mutree: reconstruct sequences along a lineage of mutations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
        examples:
          mutree run lineage.lin -v
          mutree reconstruct lineage.lin Y --trace
          mutree flatten lineage.lin X --json
          mutree stats lineage.lin
          mutree newick lineage.lin
          mutree simulate --depth 4 --children 2 --seed 7 -o sim.lin
        """),
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--debug", action="store_true", help="Show debug log records")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    # run
    p = sub.add_parser("run", help="Execute a lineage script")
    p.add_argument("script", help="Path to .lin script")
    p.add_argument("-v", "--verbose", action="store_true", help="Show source and provenance")
    p.add_argument("--exact", action="store_true", help="Reallocate storage on deletion")

    # reconstruct
    p = sub.add_parser("reconstruct", aliases=["rec"], help="Print the sequence at a node")
    p.add_argument("script", help="Path to .lin script")
    p.add_argument("node", help="Node name")
    p.add_argument("--trace", action="store_true", help="Show every applied mutation")
    p.add_argument("--plain", action="store_true", help="Print only the sequence")
    p.add_argument("--exact", action="store_true", help="Reallocate storage on deletion")
    p.add_argument("-o", "--output", help="Save the sequence to a file")

    # flatten
    p = sub.add_parser("flatten", aliases=["flat"], help="List all mutations in a subtree")
    p.add_argument("script", help="Path to .lin script")
    p.add_argument("node", nargs="?", help="Subtree root (default: tree root)")
    p.add_argument("--json", action="store_true", help="Print as a JSON list")

    # stats
    p = sub.add_parser("stats", help="Structural summary of the tree")
    p.add_argument("script", help="Path to .lin script")

    # newick
    p = sub.add_parser("newick", help="Print the tree in Newick format")
    p.add_argument("script", help="Path to .lin script")
    p.add_argument("node", nargs="?", help="Subtree root (default: tree root)")

    # simulate
    p = sub.add_parser("simulate", aliases=["sim"], help="Grow a random lineage tree")
    p.add_argument("--length", type=int, default=60, help="Root sequence length")
    p.add_argument("--depth", type=int, default=3, help="Levels below the root")
    p.add_argument("--children", type=int, default=2, help="Children per node")
    p.add_argument("--mutations", type=int, default=3, help="Mutations per branch")
    p.add_argument("--max-indel", type=int, default=3, help="Longest insertion or deletion")
    p.add_argument("--alphabet", default="ATGC", help="Symbols to draw from")
    p.add_argument("--seed", type=int, help="Random seed")
    p.add_argument("-o", "--output", help="Save the tree as a lineage script")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.no_color:
        C.off()

    if not args.command:
        parser.print_help()
        return

    # Dispatch
    commands = {
        "run": cmd_run,
        "reconstruct": cmd_reconstruct, "rec": cmd_reconstruct,
        "flatten": cmd_flatten, "flat": cmd_flatten,
        "stats": cmd_stats,
        "newick": cmd_newick,
        "simulate": cmd_simulate, "sim": cmd_simulate,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return
    try:
        handler(args)
    except FileNotFoundError as e:
        print(fail(f"File not found: {e}"))
        sys.exit(1)
    except (CommandError, InvalidMutation, MalformedTree, SimulationError, KeyError, ValueError) as e:
        print(fail(f"Error: {e}"))
        sys.exit(1)


if __name__ == "__main__":
    main()
