#!/usr/bin/env python3
import pytest

from utils.fuzzy import (
    find_best_match,
    find_smart_match,
    levenshtein,
    similarity,
    smart_match,
    soundex,
    sounds_like,
)


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("Firefox", "firefox") == 0
    assert levenshtein("", "abc") == 3


def test_similarity_percentages():
    assert similarity("", "") == 100.0
    assert similarity("abc", "abc") == 100.0
    assert round(similarity("abc", "abd"), 1) == 66.7


def test_find_best_match_respects_threshold():
    options = ["firefox", "chrome", "terminal"]
    assert find_best_match("firefux", options, 70) == "firefox"
    assert find_best_match("xyz", options, 70) is None


@pytest.mark.parametrize("word,code", [("Robert", "R163"), ("Rupert", "R163"), ("", "0000"), ("A", "A000")])
def test_soundex(word, code):
    assert soundex(word) == code


def test_sounds_like():
    assert sounds_like("Robert", "Rupert")
    assert not sounds_like("chrome", "firefox")


class TestSmartMatch:
    def test_exact_and_containment(self):
        assert smart_match("Firefox", "firefox")
        assert smart_match("open firefox now", "firefox")

    def test_fuzzy(self):
        assert smart_match("fire fox", "firefox")

    def test_blank(self):
        assert not smart_match("", "firefox")

    def test_unrelated(self):
        assert not smart_match("calculator", "wireshark")

    def test_find_smart_match_prefers_containment(self):
        assert find_smart_match("spotify music", ["firefox", "spotify"]) == "spotify"
        assert find_smart_match("spotifi", ["firefox", "spotify"]) == "spotify"
        assert find_smart_match("   ", ["firefox"]) is None


def test_matching_ignores_case():
    assert similarity("FireFox", "firefox") == 100.0
    assert levenshtein("CHROME", "chrome") == 0
    assert find_best_match("WIRESHARK", ["firefox", "wireshark"], 90) == "wireshark"


def test_find_best_match_keeps_highest_score():
    assert find_best_match("burp", ["burpsuite", "burp"], 40) == "burp"
    assert find_best_match("anything", [], 0) is None
