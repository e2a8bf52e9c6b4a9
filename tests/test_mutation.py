"""
mutree Mutation Test Suite

Tests the mutation values and apply semantics:
1. Construction-time validation and kind tags
2. Dispatch to buffer primitives
3. Invalid mutations leave the buffer unmodified
4. Immutable apply
5. Sequential coordinate frames
6. Notation
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from mutree.mutation import (
    Deletion,
    Insertion,
    MutationKind,
    Point,
    apply,
    apply_all,
    apply_immutable,
    check,
    length_delta,
    notation,
    parse_notation,
)
from mutree.sequence import DeletionMode, InvalidMutation, SequenceBuffer


# --- Test 1: Construction ---

def test_kind_tags():
    assert Point(0, "A").kind == MutationKind.POINT
    assert Insertion(0, "A").kind == MutationKind.INSERTION
    assert Deletion(0, 1).kind == MutationKind.DELETION


@pytest.mark.parametrize("build", [
    lambda: Point(-1, "A"),
    lambda: Point(0, "AT"),
    lambda: Point(0, ""),
    lambda: Insertion(-2, "A"),
    lambda: Deletion(0, -1),
    lambda: Deletion(1.5, 1),
])
def test_structurally_impossible_mutations_rejected(build):
    with pytest.raises(InvalidMutation):
        build()


def test_mutations_are_frozen_values():
    m = Point(1, "G")
    assert m == Point(1, "G")
    assert hash(m) == hash(Point(1, "G"))
    with pytest.raises(AttributeError):
        m.position = 2


# --- Test 2: Dispatch ---

def test_apply_dispatches_each_kind():
    buf = SequenceBuffer("ATGCATGC")
    apply(buf, Point(1, "G"))
    assert buf.data == "AGGCATGC"
    apply(buf, Insertion(8, "TT"))
    assert buf.data == "AGGCATGCTT"
    apply(buf, Deletion(0, 3))
    assert buf.data == "CATGCTT"


def test_apply_deletion_mode():
    buf = SequenceBuffer("ATGCATGC")
    apply(buf, Deletion(0, 4), mode=DeletionMode.EXACT)
    assert buf.capacity == 4


def test_apply_rejects_non_mutation():
    with pytest.raises(TypeError):
        apply(SequenceBuffer("AT"), ("point", 0, "A"))


def test_buffer_apply_method():
    buf = SequenceBuffer("ATGC")
    buf.apply(Insertion(2, "AA"))
    assert buf.data == "ATAAGC"


# --- Test 3: Invalid mutations ---

def test_point_at_length_fails_insertion_at_length_appends():
    buf = SequenceBuffer("ATGC")
    with pytest.raises(InvalidMutation):
        apply(buf, Point(4, "A"))
    apply(buf, Insertion(4, "A"))
    assert buf.data == "ATGCA"


@pytest.mark.parametrize("mutation", [
    Point(8, "A"),
    Insertion(9, "AAA"),
    Deletion(6, 3),
    Deletion(8, 1),
])
def test_invalid_apply_leaves_buffer_unmodified(mutation):
    buf = SequenceBuffer("ATGCATGC")
    capacity = buf.capacity
    with pytest.raises(InvalidMutation) as exc_info:
        apply(buf, mutation)
    assert exc_info.value.mutation == mutation
    assert exc_info.value.length == 8
    assert buf.data == "ATGCATGC"
    assert buf.capacity == capacity


def test_check_without_applying():
    check(Deletion(6, 2), 8)
    check(Insertion(8, "A"), 8)
    with pytest.raises(InvalidMutation):
        check(Deletion(6, 3), 8)
    with pytest.raises(TypeError):
        check("POINT 1 A", 8)


def test_zero_length_edits_are_valid_noops():
    buf = SequenceBuffer("ATGC")
    apply(buf, Insertion(4, ""))
    apply(buf, Deletion(4, 0))
    assert buf.data == "ATGC"


# --- Test 4: Immutable apply ---

def test_apply_immutable_leaves_receiver_untouched():
    original = SequenceBuffer("ATGCATGC")
    result = apply_immutable(original, Deletion(0, 2))
    assert result.data == "GCATGC"
    assert original.data == "ATGCATGC"
    assert result is not original


def test_buffer_apply_immutable_method():
    original = SequenceBuffer("ATGC")
    result = original.apply_immutable(Point(0, "T"))
    assert (original.data, result.data) == ("ATGC", "TTGC")


def test_apply_immutable_failure_leaves_receiver_untouched():
    original = SequenceBuffer("ATGC")
    with pytest.raises(InvalidMutation):
        apply_immutable(original, Point(9, "A"))
    assert original.data == "ATGC"


# --- Test 5: Coordinate frames ---

def test_positions_resolve_against_running_state():
    # The point at 0 lands on the inserted T, not the original A
    buf = apply_all(SequenceBuffer("ATGC"), [Insertion(0, "TT"), Point(0, "G")])
    assert buf.data == "GTATGC"


def test_later_mutation_valid_only_after_earlier_growth():
    buf = SequenceBuffer("AT")
    with pytest.raises(InvalidMutation):
        apply(buf.copy(), Point(3, "C"))
    apply_all(buf, [Insertion(2, "GG"), Point(3, "C")])
    assert buf.data == "ATGC"


def test_apply_all_stops_at_first_invalid():
    buf = SequenceBuffer("ATGC")
    with pytest.raises(InvalidMutation):
        apply_all(buf, [Deletion(0, 2), Point(3, "A"), Point(0, "C")])
    assert buf.data == "GC"


def test_length_delta():
    assert length_delta(Point(0, "A")) == 0
    assert length_delta(Insertion(0, "ACG")) == 3
    assert length_delta(Deletion(0, 2)) == -2


# --- Test 6: Notation ---

@pytest.mark.parametrize("mutation,text", [
    (Point(1, "G"), "POINT 1 G"),
    (Insertion(3, "ACG"), "INSERT 3 ACG"),
    (Deletion(0, 2), "DELETE 0 2"),
])
def test_notation(mutation, text):
    assert notation(mutation) == text
    assert parse_notation(text) == mutation


def test_parse_notation_is_case_insensitive_on_kind():
    assert parse_notation("delete 4 1") == Deletion(4, 1)


@pytest.mark.parametrize("text", ["POINT 1", "SWAP 1 A", "POINT x A", "DELETE 1 many"])
def test_parse_notation_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_notation(text)
