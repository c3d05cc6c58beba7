"""Unit tests for raw structure classification."""

import pytest

from profilestub.core.exceptions import StructureError
from profilestub.domain.services.raw_structure import (
    RawKind,
    classify,
    list_entries,
    normalize_key,
    to_mapping,
)

WRAPPER = {"start": 0, "limit": 1000, "count": 1, "total": 1, "data": [{"name": "x"}]}


def test_classify():
    assert classify(WRAPPER) == RawKind.WRAPPER
    assert classify({"name": "x"}) == RawKind.ENTITY_MAP
    assert classify([1, 2]) == RawKind.ENTITY_MAP
    assert classify("x") == RawKind.SCALAR
    assert classify(None) == RawKind.SCALAR


def test_incomplete_wrapper_is_entity_map():
    partial = {key: value for key, value in WRAPPER.items() if key != "total"}
    assert classify(partial) == RawKind.ENTITY_MAP
    assert classify({**WRAPPER, "data": None}) == RawKind.ENTITY_MAP


def test_normalize_key():
    assert normalize_key("17") == 17
    assert normalize_key("0") == 0
    assert normalize_key("-3") == -3
    assert normalize_key("017") == "017"
    assert normalize_key("1.5") == "1.5"
    assert normalize_key("Test") == "Test"
    assert normalize_key(4) == 4


def test_to_mapping():
    assert to_mapping(["a", "b"]) == {0: "a", 1: "b"}
    assert to_mapping({"2": "a", "x": "b"}) == {2: "a", "x": "b"}


def test_list_entries_unwraps_once():
    assert list_entries(WRAPPER, "database") == [(0, {"name": "x"})]


def test_list_entries_rejects_scalars():
    with pytest.raises(StructureError, match="'field_3' structure is not an array."):
        list_entries("x", "field_3")
    with pytest.raises(StructureError, match="not an array"):
        list_entries({**WRAPPER, "data": "x", "start": 1}, "database")
