"""Tests for text helpers: prices, tags, JSON salvage and host helpers."""

import pytest

from catalog_bot.utils.text import (
    host_of,
    is_unknown,
    parse_price,
    safe_parse_first_json_object,
    sanitize_for_filename,
    sanitize_text_for_ai,
    short_brand_name,
    split_list,
    strip_tld,
    uniq_merge,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("₹1,299.50 for 1 year", 1300),
        ("free", None),
        ("Rs. 499 only", 499),
        ("2.5", 3),
        (199, 199),
        (10.4, 10),
        (-5, None),
        (None, None),
        (True, None),
        ("", None),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


def test_uniq_merge_dedups_case_and_space_insensitive():
    assert uniq_merge(["Spotify", " spotify", "Music"], ["music", "Plan"]) == ["Spotify", "Music", "Plan"]


def test_uniq_merge_skips_empty_values_and_accepts_strings():
    assert uniq_merge(["ott", "", None], "OTT, 4K; hdr", None) == ["ott", "4K", "hdr"]


def test_split_list_handles_mixed_separators():
    assert split_list("a, b; c\nd") == ["a", "b", "c", "d"]
    assert split_list([" x ", None, ""]) == ["x"]
    assert split_list(None) == []


def test_safe_parse_strips_code_fences():
    assert safe_parse_first_json_object('```json\n{"name": "Netflix"}\n```') == {"name": "Netflix"}


def test_safe_parse_finds_first_balanced_object_in_chatter():
    raw = 'Sure! Here you go: {"name": "Box {special}", "n": 2} and also {"other": true}'
    assert safe_parse_first_json_object(raw) == {"name": "Box {special}", "n": 2}


def test_safe_parse_skips_broken_candidates():
    raw = '{"broken": } then {"ok": 1}'
    assert safe_parse_first_json_object(raw) == {"ok": 1}


@pytest.mark.parametrize("raw", ["", None, "no json here", "[1, 2, 3]", "{{{{", "```"])
def test_safe_parse_returns_none_for_garbage(raw):
    assert safe_parse_first_json_object(raw) is None


def test_host_helpers():
    assert host_of("https://www.netflix.com/in/") == "netflix.com"
    assert host_of("not a url") is None
    assert strip_tld("netflix.com") == "netflix"
    assert strip_tld("localhost") == "localhost"


def test_short_brand_name_drops_plan_words():
    assert short_brand_name("Netflix Premium 4K - 1 Month") == "Netflix 4K"
    assert short_brand_name("Spotify Premium Family") == "Spotify"
    assert short_brand_name("") == "Product"


def test_sanitize_text_for_ai_removes_markdown_and_spaces():
    assert sanitize_text_for_ai("**Netflix**   _Premium_ `4K`") == "Netflix Premium 4K"


def test_is_unknown():
    assert is_unknown("unknown")
    assert is_unknown("N/A")
    assert is_unknown(None)
    assert is_unknown("  ")
    assert not is_unknown("4K")


def test_sanitize_for_filename():
    assert sanitize_for_filename("Netflix Premium/4K?.png") == "Netflix_Premium_4K_.png"
