import pytest

from sympath.filename import (
    DEFAULT_RANDOM_SYMPATH_NAME_LENGTH,
    RANDOM_SYMPATH_ALPHABET,
    new_random_sympath_filename,
    random_sympath_filename,
)


def _assert_random_sympath_filename(name, want_length):
    assert name.endswith(".sympath")
    base = name[: -len(".sympath")]
    assert len(base) == want_length
    assert all(ch in RANDOM_SYMPATH_ALPHABET for ch in base)


def test_new_random_sympath_filename_default_shape():
    _assert_random_sympath_filename(
        new_random_sympath_filename(), DEFAULT_RANDOM_SYMPATH_NAME_LENGTH
    )


def test_random_sympath_filename_custom_length():
    _assert_random_sympath_filename(random_sympath_filename(16), 16)


def test_random_sympath_filename_rejects_short_names():
    with pytest.raises(ValueError, match="at least 10"):
        random_sympath_filename(DEFAULT_RANDOM_SYMPATH_NAME_LENGTH - 1)


def test_random_sympath_filename_varies():
    names = [new_random_sympath_filename() for _ in range(5)]
    assert len(set(names)) == 5