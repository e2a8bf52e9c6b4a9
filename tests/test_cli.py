"""
mutree CLI Test Suite

Drives mutree.cli.main() with patched argv:
1. run (success, failure, verbose)
2. reconstruct / flatten / stats / newick
3. simulate and reloading its script
4. Error exits
"""

import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from mutree import cli

from test_compiler import SAMPLE_SCRIPT


@pytest.fixture
def script(tmp_path):
    path = tmp_path / "lineage.lin"
    path.write_text(SAMPLE_SCRIPT)
    return path


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["mutree", "--no-color", *argv])
    cli.main()


# --- Test 1: run ---

def test_run_prints_artifacts(monkeypatch, capsys, script, tmp_path):
    run_cli(monkeypatch, "run", str(script))
    out = capsys.readouterr().out
    assert "Compiled: 10 statements" in out
    assert "Execution successful" in out
    assert "GCATGC" in out
    assert "(Y:1,Z:1)X;" in out
    assert (tmp_path / "y.txt").read_text() == "GCATGC\n"


def test_run_verbose_shows_provenance(monkeypatch, capsys, script):
    run_cli(monkeypatch, "run", str(script), "-v")
    out = capsys.readouterr().out
    assert "Provenance:" in out
    assert "RECONSTRUCT" in out
    assert "// Two-level lineage" in out


def test_run_failure_exits_nonzero(monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.lin"
    path.write_text('ROOT "ATGC"\n| BRANCH A FROM root\n| DELETE 3 4\n| RECONSTRUCT A\n')
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, "run", str(path))
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "Execution failed" in out
    assert "Node 'A' mutation #0" in out


def test_run_compile_error(monkeypatch, capsys, tmp_path):
    path = tmp_path / "bad.lin"
    path.write_text('ROOT "ATGC"\n| POINT 0 G\n')
    with pytest.raises(SystemExit):
        run_cli(monkeypatch, "run", str(path))
    assert "Compile error" in capsys.readouterr().out


# --- Test 2: Queries ---

def test_reconstruct_plain(monkeypatch, capsys, script):
    run_cli(monkeypatch, "reconstruct", str(script), "Z", "--plain")
    assert capsys.readouterr().out == "AGGCATGCTTT\n"


def test_reconstruct_trace_and_output(monkeypatch, capsys, script, tmp_path):
    target = tmp_path / "y.seq"
    run_cli(monkeypatch, "rec", str(script), "Y", "--trace", "-o", str(target))
    out = capsys.readouterr().out
    assert "root → X → Y" in out
    assert "POINT 1 G" in out
    assert "DELETE 0 2" in out
    assert target.read_text() == "GCATGC\n"


def test_flatten_json(monkeypatch, capsys, script):
    run_cli(monkeypatch, "flatten", str(script), "X", "--json")
    assert json.loads(capsys.readouterr().out) == ["POINT 1 G", "DELETE 0 2", "INSERT 8 TTT"]


def test_flatten_listing(monkeypatch, capsys, script):
    run_cli(monkeypatch, "flat", str(script))
    out = capsys.readouterr().out
    assert "3 mutations" in out


def test_stats(monkeypatch, capsys, script):
    run_cli(monkeypatch, "stats", str(script))
    out = capsys.readouterr().out
    assert "Nodes:      4" in out
    assert "Edges:      3" in out
    assert "Leaves:     2" in out
    assert "well-formed" in out


def test_stats_reports_broken_nodes(monkeypatch, capsys, tmp_path):
    path = tmp_path / "broken.lin"
    path.write_text('ROOT "ATGC"\n| BRANCH A FROM root\n| POINT 9 G\n| BRANCH B FROM root\n')
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, "stats", str(path))
    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "1 node(s) do not reconstruct" in out


def test_newick(monkeypatch, capsys, script):
    run_cli(monkeypatch, "newick", str(script))
    assert capsys.readouterr().out.strip() == "((Y:1,Z:1)X:1)root;"


# --- Test 3: simulate ---

def test_simulate_writes_loadable_script(monkeypatch, capsys, tmp_path):
    target = tmp_path / "sim.lin"
    run_cli(monkeypatch, "simulate", "--depth", "2", "--children", "2",
            "--length", "20", "--seed", "7", "-o", str(target))
    out = capsys.readouterr().out
    assert "7 nodes" in out
    assert target.exists()

    run_cli(monkeypatch, "reconstruct", str(target), "n6", "--plain")
    sequence = capsys.readouterr().out.strip()
    assert sequence
    assert sequence in out


def test_simulate_is_reproducible(monkeypatch, capsys):
    run_cli(monkeypatch, "sim", "--seed", "3")
    first = capsys.readouterr().out
    run_cli(monkeypatch, "sim", "--seed", "3")
    assert capsys.readouterr().out == first


# --- Test 4: Error exits ---

def test_missing_script(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, "stats", str(tmp_path / "nope.lin"))
    assert exc_info.value.code == 1
    assert "File not found" in capsys.readouterr().out


def test_unknown_node(monkeypatch, capsys, script):
    with pytest.raises(SystemExit) as exc_info:
        run_cli(monkeypatch, "reconstruct", str(script), "Q")
    assert exc_info.value.code == 1
    assert "Unknown node" in capsys.readouterr().out


def test_invalid_simulation_settings(monkeypatch, capsys):
    with pytest.raises(SystemExit):
        run_cli(monkeypatch, "simulate", "--depth", "-1")
    assert "depth must be >= 0" in capsys.readouterr().out


def test_no_command_prints_help(monkeypatch, capsys):
    run_cli(monkeypatch)
    assert "usage: mutree" in capsys.readouterr().out
