"""Functional tests for option key derivation (pure helpers)."""

from __future__ import annotations

import pytest

from formbank.logic.errors import Conflict, ValidationError
from formbank.logic.option_keys import clean_label, derive_keys, normalize_option_input, slugify


@pytest.mark.parametrize(
    "label, expected",
    [
        ("High", "high"),
        ("  High -- Priority! ", "high_priority"),
        ("Über cool", "ber_cool"),
        ("!!!", "option"),
        ("a" * 80, "a" * 60),
    ],
)
def test_slugify(label, expected):
    assert slugify(label) == expected


def test_derive_keys_disambiguates_in_occurrence_order():
    pairs = normalize_option_input(["Yes", "yes", "YES!", "No"])
    assert derive_keys(pairs) == [("yes", "Yes"), ("yes_2", "yes"), ("yes_3", "YES!"), ("no", "No")]


def test_derive_keys_skips_existing_keys():
    pairs = normalize_option_input(["Red"])
    assert derive_keys(pairs, existing_keys=["red", "red_2"]) == [("red_3", "Red")]


def test_derive_keys_is_deterministic():
    pairs = normalize_option_input(["A b", "a-B", "Other"])
    assert derive_keys(pairs, ["other"]) == derive_keys(pairs, ["other"])


def test_explicit_keys_are_kept_and_checked():
    pairs = normalize_option_input([{"key": "p1", "label": "High"}, {"label": "Low"}])
    assert derive_keys(pairs) == [("p1", "High"), ("low", "Low")]

    with pytest.raises(ValidationError):
        derive_keys(normalize_option_input([{"key": "x", "label": "A"}, {"key": "x", "label": "B"}]))
    with pytest.raises(Conflict):
        derive_keys(normalize_option_input([{"key": "x", "label": "A"}]), existing_keys=["x"])


def test_explicit_key_does_not_collide_with_derived_key():
    pairs = normalize_option_input([{"label": "Blue"}, {"key": "blue", "label": "Navy"}])
    assert derive_keys(pairs) == [("blue_2", "Blue"), ("blue", "Navy")]


@pytest.mark.parametrize("bad", [["ok", {"label": "mixed"}], [""], ["   "], [3], [{"key": "bad key!", "label": "A"}]])
def test_invalid_option_input_is_rejected(bad):
    with pytest.raises(ValidationError):
        normalize_option_input(bad)


def test_clean_label_bounds():
    assert clean_label("  Keep  ") == "Keep"
    with pytest.raises(ValidationError):
        clean_label("x" * 501)
