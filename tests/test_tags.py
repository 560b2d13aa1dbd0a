"""Tests for tolerant JSON extraction."""

from __future__ import annotations

from devtrail.utils.tags import extract_json_object


def test_plain_json() -> None:
    assert extract_json_object('{"scores": []}') == {"scores": []}


def test_fenced_json() -> None:
    raw = 'Here you go:\n```json\n{"a": 1}\n```\nthanks'
    assert extract_json_object(raw) == {"a": 1}


def test_unlabelled_fence() -> None:
    assert extract_json_object('```\n{"a": [1, 2]}\n```') == {"a": [1, 2]}


def test_json_surrounded_by_prose() -> None:
    raw = 'Sure. {"findings": [{"kind": "context"}], "leads": []} Hope that helps.'
    assert extract_json_object(raw) == {"findings": [{"kind": "context"}], "leads": []}


def test_unparsable_returns_none() -> None:
    assert extract_json_object("") is None
    assert extract_json_object("no json here") is None
    assert extract_json_object("{broken: }") is None
    assert extract_json_object("[1, 2, 3]") is None
