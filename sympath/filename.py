"""Random, collision-resistant ``.sympath`` file names."""

from __future__ import annotations

import secrets

DEFAULT_RANDOM_SYMPATH_NAME_LENGTH = 10
RANDOM_SYMPATH_ALPHABET = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
)
SYMPATH_SUFFIX = ".sympath"


def new_random_sympath_filename() -> str:
    """Return a random ``.sympath`` name of the default length."""
    return random_sympath_filename(DEFAULT_RANDOM_SYMPATH_NAME_LENGTH)


def random_sympath_filename(length: int) -> str:
    """Return a random alphanumeric name of ``length`` characters plus ``.sympath``.

    Raises ValueError if ``length`` is below the default length.
    """
    if length < DEFAULT_RANDOM_SYMPATH_NAME_LENGTH:
        raise ValueError(
            "random .sympath filename length must be at least "
            f"{DEFAULT_RANDOM_SYMPATH_NAME_LENGTH}"
        )
    stem = "".join(secrets.choice(RANDOM_SYMPATH_ALPHABET) for _ in range(length))
    return stem + SYMPATH_SUFFIX