import pytest

from contract_monitor.drift.similarity import calculate_path_similarity, levenshtein_distance


class TestLevenshtein:
    @pytest.mark.parametrize("a,b,expected", [
        ("", "", 0),
        ("abc", "", 3),
        ("kitten", "sitting", 3),
        ("/api/notes", "/api/notes", 0),
        ("/api/note", "/api/notes", 1),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_symmetric(self):
        assert levenshtein_distance("/api/notes", "/api/groups") == levenshtein_distance("/api/groups", "/api/notes")


class TestPathSimilarity:
    def test_identical(self):
        assert calculate_path_similarity("/api/notes", "/api/notes") == 1

    def test_both_empty(self):
        assert calculate_path_similarity("", "") == 1

    def test_different_paths(self):
        assert calculate_path_similarity("/api/notes", "/api/groups") < 1

    def test_prefix_of_double_length_is_exactly_half(self):
        assert calculate_path_similarity("/api/notes", "/api/notes/1/archive") == 0.5

    def test_bounded(self):
        assert calculate_path_similarity("abc", "xyz") == 0
        assert 0 <= calculate_path_similarity("/a", "/api/notes") <= 1
