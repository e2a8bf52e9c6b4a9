"""
mutree Lineage Script Compiler Test Suite

Tests the lexer, parser and script renderer:
1. Tokenization (keywords, strings, numbers, kwargs, comments)
2. Lexer errors with positions
3. Statement parsing and branch grouping
4. Parse errors
5. Rendering a tree back to script form
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from mutree import Deletion, Insertion, MutationTree, Point
from mutree.compiler import (
    AssertNode,
    BranchNode,
    EmitNode,
    FlattenNode,
    LexerError,
    LoadNode,
    NewickNode,
    ParseError,
    ReconstructNode,
    RootNode,
    StatsNode,
    TokenType,
    compile_script,
    render_script,
    tokenize,
)
from mutree.runtime import Runtime

from test_tree import build_sample_tree


SAMPLE_SCRIPT = """
// Two-level lineage
ROOT "ATGCATGC"
| BRANCH X FROM root
|   POINT 1 G
| BRANCH Y FROM X payload="lab strain"
|   DELETE 0 2
| BRANCH Z FROM X
|   INSERT 8 TTT
| RECONSTRUCT Y
| ASSERT X sequence="AGGCATGC" length=8
| FLATTEN
| STATS
| NEWICK X
| EMIT Y "y.txt"
"""


def types(source):
    return [t.type for t in tokenize(source)]


# --- Test 1: Tokenization ---

def test_tokenize_root_statement():
    tokens = tokenize('ROOT "ATGC" name=base')
    assert [t.type for t in tokens] == [
        TokenType.ROOT, TokenType.STRING, TokenType.KEYWORD_ARG, TokenType.EOF,
    ]
    assert tokens[1].value == "ATGC"
    assert tokens[2].value == "name=base"


def test_tokenize_mutation_and_comment():
    assert types("| POINT 1 G // substitution") == [
        TokenType.PIPE, TokenType.POINT, TokenType.NUMBER, TokenType.IDENTIFIER, TokenType.EOF,
    ]


def test_tokenize_quoted_kwarg_keeps_spaces():
    tokens = tokenize("BRANCH X FROM root payload='two words'")
    assert tokens[-2].type == TokenType.KEYWORD_ARG
    assert tokens[-2].value == "payload=two words"


def test_tokenize_identifiers_allow_hyphens():
    tokens = tokenize("BRANCH strain-2 FROM root")
    assert tokens[1].type == TokenType.IDENTIFIER
    assert tokens[1].value == "strain-2"


def test_comment_markers_inside_strings_are_text():
    tokens = tokenize('EMIT X "out//x.txt" // trailing note')
    assert [t.type for t in tokens] == [
        TokenType.EMIT, TokenType.IDENTIFIER, TokenType.STRING, TokenType.EOF,
    ]
    assert tokens[2].value == "out//x.txt"
    tokens = tokenize("BRANCH X FROM root payload='see https://example.org'")
    assert tokens[-2].value == "payload=see https://example.org"


def test_bare_kwarg_value_stops_at_comment():
    tokens = tokenize("LOAD seqs reader=lines// pick the line reader")
    assert tokens[-2].value == "reader=lines"
    assert tokens[-1].type == TokenType.EOF


def test_tokenize_positions():
    tokens = tokenize('ROOT "A"\n  STATS')
    stats = tokens[2]
    assert (stats.type, stats.line, stats.col) == (TokenType.STATS, 2, 2)


# --- Test 2: Lexer errors ---

def test_unterminated_string():
    with pytest.raises(LexerError) as exc_info:
        tokenize('ROOT "ATGC')
    assert exc_info.value.line == 1
    assert exc_info.value.col == 5


def test_unexpected_character():
    with pytest.raises(LexerError, match="Unexpected character") as exc_info:
        tokenize('ROOT "AT"\n| BRANCH $')
    assert (exc_info.value.line, exc_info.value.col) == (2, 9)


def test_negative_numbers_are_not_tokens():
    with pytest.raises(LexerError):
        tokenize("POINT -1 A")


@pytest.mark.parametrize("digit", ["²", "٣", "①"])
def test_non_ascii_digits_are_lexer_errors(digit):
    with pytest.raises(LexerError, match="Unexpected character") as exc_info:
        compile_script(f'ROOT "AT"\n| BRANCH X FROM root\n| POINT {digit} G\n')
    assert (exc_info.value.line, exc_info.value.col) == (3, 8)


# --- Test 3: Parsing ---

def test_parse_sample_script():
    program = compile_script(SAMPLE_SCRIPT)
    kinds = [type(s) for s in program.statements]
    assert kinds == [
        RootNode, BranchNode, BranchNode, BranchNode,
        ReconstructNode, AssertNode, FlattenNode, StatsNode, NewickNode, EmitNode,
    ]


def test_mutations_group_under_latest_branch():
    program = compile_script(SAMPLE_SCRIPT)
    x, y, z = program.statements[1:4]
    assert (x.name, x.parent, x.mutations) == ("X", "root", [Point(1, "G")])
    assert (y.name, y.parent, y.mutations) == ("Y", "X", [Deletion(0, 2)])
    assert y.kwargs == {"payload": "lab strain"}
    assert z.mutations == [Insertion(8, "TTT")]


def test_statement_arguments():
    program = compile_script(SAMPLE_SCRIPT)
    root, *_, reconstruct, assertion, flatten, stats, newick, emit = program.statements
    assert root.sequence == "ATGCATGC"
    assert reconstruct.name == "Y"
    assert assertion.kwargs == {"sequence": "AGGCATGC", "length": "8"}
    assert flatten.name is None
    assert newick.name == "X"
    assert (emit.name, emit.target) == ("Y", "y.txt")


def test_several_mutations_keep_order():
    program = compile_script(
        'ROOT "ATGC"\n| BRANCH A FROM root\n| INSERT 0 "GG"\n| POINT 0 C\n| DELETE 5 1'
    )
    assert program.statements[1].mutations == [Insertion(0, "GG"), Point(0, "C"), Deletion(5, 1)]


def test_empty_insertion_and_branch_without_mutations():
    program = compile_script('ROOT "ATGC"\n| BRANCH A FROM root\n| INSERT 2 ""\n| BRANCH B FROM A')
    assert program.statements[1].mutations == [Insertion(2, "")]
    assert program.statements[2].mutations == []


def test_load_statement():
    program = compile_script('LOAD "seqs.txt" index=2 reader=lines')
    load = program.statements[0]
    assert isinstance(load, LoadNode)
    assert load.source == "seqs.txt"
    assert load.kwargs == {"index": "2", "reader": "lines"}


def test_keyword_names_can_be_quoted():
    program = compile_script('ROOT "AT"\n| BRANCH "STATS" FROM root\n| RECONSTRUCT "STATS"')
    assert program.statements[1].name == "STATS"
    assert program.statements[2].name == "STATS"


def test_pipes_are_optional():
    with_pipes = compile_script('ROOT "AT"\n| BRANCH A FROM root\n| POINT 0 G')
    without = compile_script('ROOT "AT"\nBRANCH A FROM root\nPOINT 0 G')
    assert with_pipes == without


# --- Test 4: Parse errors ---

@pytest.mark.parametrize("source,message", [
    ('ROOT "AT"\n| POINT 0 G', "outside of a BRANCH"),
    ('ROOT "AT"\n| BRANCH A FROM root\n| STATS\n| POINT 0 G', "outside of a BRANCH"),
    ('ROOT "AT"\n| BRANCH A root', "Expected FROM"),
    ('ROOT "AT"\n| BRANCH A FROM root\n| DELETE 0 G', "count"),
    ('ROOT "AT"\n| BRANCH A FROM root\n| POINT G 0', "position"),
    ('ROOT "AT"\n| ASSERT root', "ASSERT needs"),
    ('ROOT "AT"\n| A FROM root', "Unexpected token"),
    ("ROOT", "root sequence"),
])
def test_parse_errors(source, message):
    with pytest.raises(ParseError, match=message):
        compile_script(source)


def test_impossible_mutation_is_a_parse_error():
    with pytest.raises(ParseError, match="one character") as exc_info:
        compile_script('ROOT "AT"\n| BRANCH A FROM root\n| POINT 0 GA')
    assert exc_info.value.token.type == TokenType.POINT
    assert exc_info.value.token.line == 3


# --- Test 5: Rendering ---

def test_render_script_rebuilds_tree():
    tree = build_sample_tree()
    tree.get("Y").payload = "lab strain"
    source = render_script(tree)
    assert source.startswith('ROOT "ATGCATGC" name=root\n')
    assert '| BRANCH Y FROM X payload="lab strain"' in source
    assert '|   INSERT 0 "GG"' in source

    rebuilt = Runtime().run(source).tree
    assert rebuilt.names == tree.names
    assert rebuilt.reconstruct_all() == tree.reconstruct_all()
    assert rebuilt.get("Y").payload == "lab strain"


def test_render_script_quotes_awkward_names():
    tree = MutationTree("ATGC", root_name="FROM")
    tree.add_child("FROM", "two words", [Deletion(0, 1)])
    source = render_script(tree)
    assert 'name="FROM"' in source
    assert '| BRANCH "two words" FROM "FROM"' in source
    rebuilt = Runtime().run(source).tree
    assert rebuilt.reconstruct("two words").data == "TGC"


@pytest.mark.parametrize("payload", [
    "see https://example.org",
    '5" clone',
    "strain 'B'",
    "",
])
def test_render_script_payload_round_trip(payload):
    tree = build_sample_tree()
    tree.get("X").payload = payload
    result = Runtime().run(render_script(tree))
    assert result.success, result.errors
    assert result.tree.get("X").payload == payload
    assert result.tree.reconstruct_all() == tree.reconstruct_all()


@pytest.mark.parametrize("name", ["a//b", 'say "hi"', "it's", "x|y"])
def test_render_script_name_round_trip(name):
    tree = MutationTree("ATGC", root_name=name)
    tree.add_child(name, name + "-child", [Point(0, "G")])
    result = Runtime().run(render_script(tree))
    assert result.success, result.errors
    assert result.tree.names == [name, name + "-child"]
    assert result.tree.reconstruct(name + "-child").data == "GTGC"


def test_render_script_quotes_symbols():
    tree = MutationTree('A"C')
    tree.add_child("root", "X", [Point(0, "'"), Insertion(3, '"')])
    result = Runtime().run(render_script(tree))
    assert result.success, result.errors
    assert result.tree.reconstruct("X").data == '\'"C"'


@pytest.mark.parametrize("payload", ["both \" and '", "two\nlines"])
def test_render_script_rejects_unwritable_values(payload):
    tree = build_sample_tree()
    tree.get("Y").payload = payload
    with pytest.raises(ValueError):
        render_script(tree)
