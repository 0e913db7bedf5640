"""Tests for object key generation and name helpers."""

from projectfiles.utils.path_utils import (
    file_extension,
    generate_object_path,
    normalize_file_name,
    normalize_path,
)


class TestNormalizeFileName:
    def test_replaces_unsafe_characters_and_lowercases(self):
        assert normalize_file_name("Q1 Brief (final).PDF") == "q1_brief__final_.pdf"

    def test_keeps_safe_characters(self):
        assert normalize_file_name("logo-v2_final.png") == "logo-v2_final.png"


class TestFileExtension:
    def test_last_extension_lowercased(self):
        assert file_extension("archive.tar.GZ") == "gz"

    def test_no_extension(self):
        assert file_extension("README") == ""


class TestNormalizePath:
    def test_backslashes_and_edges(self):
        assert normalize_path("\\a\\b\\") == "a/b"

    def test_empty(self):
        assert normalize_path("") == ""


class TestGenerateObjectPath:
    def test_root_file(self):
        path = generate_object_path("u1", "p1", "Photo 1.JPG", timestamp_ms=1700000000000)
        assert path == "u1/p1/1700000000000_photo_1.jpg"

    def test_parent_segment(self):
        path = generate_object_path("u1", "p1", "a.txt", parent_id="f1", timestamp_ms=5)
        assert path == "u1/p1/f1/5_a.txt"

    def test_priority_segment_for_keyword_names(self):
        path = generate_object_path("u1", "p1", "Client Brief.pdf", parent_id="docs", timestamp_ms=7)
        assert path == "u1/p1/docs/priority_docs/7_client_brief.pdf"

    def test_deterministic_for_same_instant(self):
        first = generate_object_path("u1", "p1", "x.png", "f", 42)
        second = generate_object_path("u1", "p1", "x.png", "f", 42)
        assert first == second

    def test_different_instants_give_different_keys(self):
        first = generate_object_path("u1", "p1", "x.png", "f", 42)
        second = generate_object_path("u1", "p1", "x.png", "f", 43)
        assert first != second

    def test_defaults_to_current_time(self):
        path = generate_object_path("u1", "p1", "x.png")
        millis, name = path.rsplit("/", 1)[-1].split("_", 1)
        assert millis.isdigit() and len(millis) >= 13
        assert name == "x.png"
