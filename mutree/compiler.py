"""
mutree Lineage Script Compiler

Compiles lineage scripts into a Program AST for the Runtime, and renders an
existing MutationTree back into script form.

A script declares a root sequence, grows branches, and then asks questions
about the resulting tree. Mutation statements attach to the most recent
BRANCH.

Example:
    ROOT "ATGCATGC"
    | BRANCH X FROM root
    | POINT 1 G
    | BRANCH Y FROM X payload="lab strain"
    | DELETE 0 2
    | INSERT 3 ACG
    | RECONSTRUCT Y
    | ASSERT X sequence="AGGCATGC"
    | FLATTEN root
    | STATS
    | NEWICK
    | EMIT Y "y.txt"

Compilation phases:
1. Lexical analysis -> token stream
2. Parsing -> Program of statement nodes, mutations grouped under branches
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

from mutree.mutation import Deletion, Insertion, Mutation, Point
from mutree.sequence import InvalidMutation

if TYPE_CHECKING:
    from mutree.tree import MutationTree


# ============================================================================
# Token Types
# ============================================================================

class TokenType(Enum):
    ROOT = auto()
    LOAD = auto()
    BRANCH = auto()
    FROM = auto()
    POINT = auto()
    INSERT = auto()
    DELETE = auto()
    RECONSTRUCT = auto()
    FLATTEN = auto()
    ASSERT = auto()
    STATS = auto()
    NEWICK = auto()
    EMIT = auto()
    PIPE = auto()         # |
    STRING = auto()       # "quoted" or 'quoted'
    IDENTIFIER = auto()   # bareword
    NUMBER = auto()
    KEYWORD_ARG = auto()  # key=value
    EOF = auto()


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    col: int

    def __repr__(self) -> str:
        return f"<{self.type.name}:{self.value!r}>"


# ============================================================================
# Lexer
# ============================================================================

KEYWORDS = {
    "ROOT": TokenType.ROOT,
    "LOAD": TokenType.LOAD,
    "BRANCH": TokenType.BRANCH,
    "FROM": TokenType.FROM,
    "POINT": TokenType.POINT,
    "INSERT": TokenType.INSERT,
    "DELETE": TokenType.DELETE,
    "RECONSTRUCT": TokenType.RECONSTRUCT,
    "FLATTEN": TokenType.FLATTEN,
    "ASSERT": TokenType.ASSERT,
    "STATS": TokenType.STATS,
    "NEWICK": TokenType.NEWICK,
    "EMIT": TokenType.EMIT,
}

_IDENTIFIER = re.compile(r"[a-zA-Z_][\w\-]*")
_DIGITS = "0123456789"


class LexerError(Exception):
    def __init__(self, message: str, line: int, col: int):
        super().__init__(f"Line {line}, Col {col}: {message}")
        self.line = line
        self.col = col


def tokenize(source: str) -> list[Token]:
    """Tokenize a lineage script into a token stream."""
    tokens: list[Token] = []
    lines = source.split("\n")

    for line_num, text in enumerate(lines, 1):
        col = 0

        while col < len(text):
            if text[col] in " \t\r":
                col += 1
                continue

            # Comment runs to end of line
            if text.startswith("//", col):
                break

            if text[col] == "|":
                tokens.append(Token(TokenType.PIPE, "|", line_num, col))
                col += 1
                continue

            # Quoted string
            if text[col] in "\"'":
                quote = text[col]
                end = text.find(quote, col + 1)
                if end < 0:
                    raise LexerError("Unterminated string", line_num, col)
                tokens.append(Token(TokenType.STRING, text[col+1:end], line_num, col))
                col = end + 1
                continue

            if text[col] in _DIGITS:
                match = re.match(r"[0-9]+", text[col:])
                tokens.append(Token(TokenType.NUMBER, match.group(), line_num, col))
                col += match.end()
                continue

            # Keyword=Value (e.g. index=2, sequence="ACGT")
            kv_match = re.match(r"([a-zA-Z_]\w*)=", text[col:])
            if kv_match:
                key = kv_match.group(1)
                start = col
                col += kv_match.end()
                if col < len(text) and text[col] in "\"'":
                    quote = text[col]
                    end = text.find(quote, col + 1)
                    if end < 0:
                        raise LexerError("Unterminated string in kwarg", line_num, col)
                    value = text[col+1:end]
                    col = end + 1
                else:
                    val_match = re.match(r"(?:(?!//)[^\s|])*", text[col:])
                    value = val_match.group()
                    col += val_match.end()
                tokens.append(Token(TokenType.KEYWORD_ARG, f"{key}={value}", line_num, start))
                continue

            match = _IDENTIFIER.match(text, col)
            if match:
                word = match.group()
                tokens.append(Token(KEYWORDS.get(word, TokenType.IDENTIFIER), word, line_num, col))
                col = match.end()
                continue

            raise LexerError(f"Unexpected character: {text[col]!r}", line_num, col)

    tokens.append(Token(TokenType.EOF, "", len(lines), 0))
    return tokens


# ============================================================================
# AST Nodes
# ============================================================================

class ASTNode:
    """Base class for all statement nodes."""
    pass


@dataclass
class RootNode(ASTNode):
    sequence: str
    kwargs: dict[str, str] = field(default_factory=dict)

@dataclass
class LoadNode(ASTNode):
    source: str
    kwargs: dict[str, str] = field(default_factory=dict)

@dataclass
class BranchNode(ASTNode):
    name: str
    parent: str
    mutations: list[Mutation] = field(default_factory=list)
    kwargs: dict[str, str] = field(default_factory=dict)

@dataclass
class ReconstructNode(ASTNode):
    name: str
    kwargs: dict[str, str] = field(default_factory=dict)

@dataclass
class FlattenNode(ASTNode):
    name: Optional[str] = None

@dataclass
class AssertNode(ASTNode):
    name: str
    kwargs: dict[str, str] = field(default_factory=dict)

@dataclass
class StatsNode(ASTNode):
    pass

@dataclass
class NewickNode(ASTNode):
    name: Optional[str] = None

@dataclass
class EmitNode(ASTNode):
    name: str
    target: str = ""

@dataclass
class Program(ASTNode):
    """A complete lineage script: statements in order."""
    statements: list[ASTNode]


# ============================================================================
# Parser
# ============================================================================

class ParseError(Exception):
    def __init__(self, message: str, token: Token):
        super().__init__(f"Line {token.line}, Col {token.col}: {message} (got {token})")
        self.token = token


_VALUE_TYPES = {TokenType.STRING, TokenType.IDENTIFIER, TokenType.NUMBER, *KEYWORDS.values()}


class Parser:
    """Parses a lineage token stream into a Program."""

    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._pos = 0
        self._branch: Optional[BranchNode] = None

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def _expect(self, ttype: TokenType) -> Token:
        tok = self._advance()
        if tok.type != ttype:
            raise ParseError(f"Expected {ttype.name}", tok)
        return tok

    def _at(self, ttype: TokenType) -> bool:
        return self._peek().type == ttype

    def _value(self, what: str) -> str:
        """A bareword, number, keyword or quoted string."""
        tok = self._peek()
        if tok.type not in _VALUE_TYPES:
            raise ParseError(f"Expected {what}", tok)
        return self._advance().value

    def _number(self, what: str) -> int:
        return int(self._expect_described(TokenType.NUMBER, what).value)

    def _expect_described(self, ttype: TokenType, what: str) -> Token:
        tok = self._advance()
        if tok.type != ttype:
            raise ParseError(f"Expected {what}", tok)
        return tok

    def _optional_name(self) -> Optional[str]:
        if self._at(TokenType.IDENTIFIER) or self._at(TokenType.STRING):
            return self._advance().value
        return None

    def _collect_kwargs(self) -> dict[str, str]:
        kwargs = {}
        while self._at(TokenType.KEYWORD_ARG):
            key, _, val = self._advance().value.partition("=")
            kwargs[key] = val
        return kwargs

    def parse(self) -> Program:
        """Parse a complete lineage script."""
        statements: list[ASTNode] = []

        while not self._at(TokenType.EOF):
            while self._at(TokenType.PIPE):
                self._advance()
            if self._at(TokenType.EOF):
                break

            statement = self._parse_statement()
            if statement is not None:
                statements.append(statement)

        return Program(statements=statements)

    def _parse_statement(self) -> Optional[ASTNode]:
        tok = self._peek()
        if tok.type not in (TokenType.POINT, TokenType.INSERT, TokenType.DELETE):
            # Mutations must directly follow their BRANCH
            self._branch = None

        if tok.type == TokenType.ROOT:
            self._advance()
            sequence = self._value("root sequence after ROOT")
            return RootNode(sequence=sequence, kwargs=self._collect_kwargs())
        elif tok.type == TokenType.LOAD:
            self._advance()
            source = self._value("file path after LOAD")
            return LoadNode(source=source, kwargs=self._collect_kwargs())
        elif tok.type == TokenType.BRANCH:
            return self._parse_branch()
        elif tok.type in (TokenType.POINT, TokenType.INSERT, TokenType.DELETE):
            self._parse_mutation()
            return None
        elif tok.type == TokenType.RECONSTRUCT:
            self._advance()
            name = self._value("node name after RECONSTRUCT")
            return ReconstructNode(name=name, kwargs=self._collect_kwargs())
        elif tok.type == TokenType.FLATTEN:
            self._advance()
            return FlattenNode(name=self._optional_name())
        elif tok.type == TokenType.ASSERT:
            self._advance()
            name = self._value("node name after ASSERT")
            kwargs = self._collect_kwargs()
            if not kwargs:
                raise ParseError("ASSERT needs sequence=, length= or type=", self._peek())
            return AssertNode(name=name, kwargs=kwargs)
        elif tok.type == TokenType.STATS:
            self._advance()
            return StatsNode()
        elif tok.type == TokenType.NEWICK:
            self._advance()
            return NewickNode(name=self._optional_name())
        elif tok.type == TokenType.EMIT:
            self._advance()
            name = self._value("node name after EMIT")
            target = ""
            if self._at(TokenType.STRING):
                target = self._advance().value
            return EmitNode(name=name, target=target)
        else:
            raise ParseError("Unexpected token in script", tok)

    def _parse_branch(self) -> BranchNode:
        self._expect(TokenType.BRANCH)
        name = self._value("node name after BRANCH")
        self._expect(TokenType.FROM)
        parent = self._value("parent name after FROM")
        branch = BranchNode(name=name, parent=parent, kwargs=self._collect_kwargs())
        self._branch = branch
        return branch

    def _parse_mutation(self) -> None:
        tok = self._advance()
        if self._branch is None:
            raise ParseError(f"{tok.value} outside of a BRANCH", tok)
        position = self._number("position")
        try:
            if tok.type == TokenType.POINT:
                mutation: Mutation = Point(position, self._value("symbol"))
            elif tok.type == TokenType.INSERT:
                mutation = Insertion(position, self._value("subsequence"))
            else:
                mutation = Deletion(position, self._number("count"))
        except InvalidMutation as e:
            raise ParseError(str(e), tok)
        self._branch.mutations.append(mutation)


# ============================================================================
# Rendering
# ============================================================================

def _quote(value: str) -> str:
    """Wrap `value` in a quote character it does not contain.

    Strings have no escapes, so a value holding both quote characters (or a
    line break) cannot be written.
    """
    if "\n" in value or "\r" in value:
        raise ValueError(f"Cannot write a line break in a script string: {value!r}")
    for quote in "\"'":
        if quote not in value:
            return f"{quote}{value}{quote}"
    raise ValueError(f"Cannot quote a value holding both quote characters: {value!r}")


def _quote_name(name: str) -> str:
    if _IDENTIFIER.fullmatch(name) and name not in KEYWORDS:
        return name
    return _quote(name)


def render_script(tree: MutationTree) -> str:
    """Write a MutationTree as a lineage script that rebuilds it.

    Payloads are kept only when they are strings.

    Raises:
        ValueError: a name, payload or symbol run cannot be quoted
    """
    lines = [f"ROOT {_quote(tree.sequence)} name={_quote_name(tree.root.name)}"]
    for node in tree:
        if node.is_root:
            continue
        line = f"| BRANCH {_quote_name(node.name)} FROM {_quote_name(node.parent.name)}"
        if isinstance(node.payload, str):
            line += f" payload={_quote(node.payload)}"
        lines.append(line)
        for mutation in node.mutations:
            if isinstance(mutation, Point):
                lines.append(f"|   POINT {mutation.position} {_quote(mutation.symbol)}")
            elif isinstance(mutation, Insertion):
                lines.append(f"|   INSERT {mutation.position} {_quote(mutation.subsequence)}")
            else:
                lines.append(f"|   DELETE {mutation.position} {mutation.count}")
    return "\n".join(lines) + "\n"


# ============================================================================
# Public API
# ============================================================================

def compile_script(source: str) -> Program:
    """Compile lineage script text into a Program.

    Raises:
        LexerError / ParseError with line and column
    """
    tokens = tokenize(source)
    parser = Parser(tokens)
    return parser.parse()
