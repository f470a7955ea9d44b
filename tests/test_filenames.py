from __future__ import annotations

import re

import pytest

from mediavault.core.errors import InvalidFilename
from mediavault.ingest.filenames import (
    FILENAME_PATTERN,
    content_type_for,
    is_valid_filename,
    make_staged_filename,
    make_thumbnail_filename,
    validate_filename,
)

REFERENCE = re.compile(r"^([a-z0-9_-]+/)?[a-z0-9_-]+\.(gif|jpg|jpeg|png)$")


@pytest.mark.parametrize(
    "filename, valid",
    [
        ("a/b.png", True),
        ("b.png", True),
        ("alice/pic.jpg", True),
        ("alice_2/my-cat.jpeg", True),
        ("__deleted__/1700000000000-alice-pic.gif", True),
        ("A/b.png", False),
        ("a/b/c.png", False),
        ("a.bmp", False),
        ("a.PNG", False),
        ("/a.png", False),
        ("a/.png", False),
        ("a b.png", False),
        ("a.png\n", False),
        ("../a.png", False),
        ("", False),
    ],
)
def test_filename_grammar(filename, valid):
    assert is_valid_filename(filename) is valid
    assert (REFERENCE.match(filename) is not None and "\n" not in filename) is valid


def test_pattern_matches_reference_text():
    assert FILENAME_PATTERN.pattern == REFERENCE.pattern


def test_validate_filename_raises_invalid_filename():
    with pytest.raises(InvalidFilename) as excinfo:
        validate_filename("a/b/c.png")
    assert excinfo.value.filename == "a/b/c.png"
    assert isinstance(excinfo.value, ValueError)


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("a.jpg", "image/jpeg"),
        ("a.jpeg", "image/jpeg"),
        ("a/b.png", "image/png"),
        ("a/b.gif", "image/gif"),
    ],
)
def test_content_type_for(filename, expected):
    assert content_type_for(filename) == expected


def test_make_thumbnail_filename():
    assert make_thumbnail_filename("a/b.gif") == "a/b-thumbnail.jpg"
    assert make_thumbnail_filename("foo/bar.gif") == "foo/bar-thumbnail.jpg"
    assert make_thumbnail_filename("pic.png") == "pic-thumbnail.jpg"


def test_make_staged_filename_is_grammar_valid():
    staged = make_staged_filename("alice/pic.jpg", timestamp_ms=1700000000000)
    assert staged == "__deleted__/1700000000000-alice-pic.jpg"
    assert is_valid_filename(staged)
    assert is_valid_filename(make_thumbnail_filename(staged))
