from __future__ import annotations

import pytest

from exportready_client_sdk.identifiers import extract_unit_id, is_unit_id, normalize_unit_id

from conftest import UNIT_A


@pytest.mark.parametrize(
    "raw",
    [
        UNIT_A,
        f"\x02{UNIT_A}\r\n",
        f"https://passports.example.com/p/{UNIT_A}",
        f"https://passports.example.com/p/{UNIT_A}?ref=label#top",
        f"]Q1{UNIT_A}]",
        UNIT_A.upper(),
    ],
)
def test_extract_unit_id_finds_embedded_identifier(raw: str) -> None:
    assert extract_unit_id(raw) == UNIT_A


def test_extract_unit_id_returns_first_match() -> None:
    other = "0f8fad5b-d9cb-469f-a165-70867728950e"
    assert extract_unit_id(f"{other} {UNIT_A}") == other


@pytest.mark.parametrize("raw", ["", None, "hello", "a1b2c3d4-e5f6-47a8-89b0", "zzzzzzzz-zzzz-zzzz-zzzz-zzzzzzzzzzzz"])
def test_extract_unit_id_rejects_noise(raw) -> None:
    assert extract_unit_id(raw) is None


def test_is_unit_id_requires_whole_string() -> None:
    assert is_unit_id(UNIT_A)
    assert not is_unit_id(f"x{UNIT_A}")


def test_normalize_unit_id() -> None:
    assert normalize_unit_id(f"  {UNIT_A.upper()} ") == UNIT_A
    assert normalize_unit_id("   ") is None
    assert normalize_unit_id(None) is None
