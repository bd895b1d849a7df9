"""Identifier helpers shared by the analyzer and the test converter."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_NON_WORD = re.compile(r"[^0-9A-Za-z]+")
_INTERFACE_PREFIX = re.compile(r"^I(?=[A-Z][a-z])")
_TEST_AFFIXES = re.compile(r"^test_|_tests?$|^tests?$")


def split_words(name: str) -> list[str]:
    """Split camel, pascal, snake and kebab case identifiers into words."""
    spaced = _CAMEL_BOUNDARY.sub(" ", name)
    return [word for word in _NON_WORD.split(spaced) if word]


def snake_case(name: str) -> str:
    return "_".join(word.lower() for word in split_words(name))


def canonical_key(name: str) -> str:
    """Convention-insensitive comparison key (``IFooBar``, ``foo_bar`` -> ``foobar``)."""
    stripped = _INTERFACE_PREFIX.sub("", name)
    return "".join(word.lower() for word in split_words(stripped))


def canonical_test_key(name: str) -> str:
    """Comparison key for test names, ignoring ``test_`` prefixes and ``Test`` suffixes."""
    snake = snake_case(name)
    previous = None
    while previous != snake:
        previous = snake
        snake = _TEST_AFFIXES.sub("", snake).strip("_")
    return snake.replace("_", "")


__all__ = [
    "canonical_key",
    "canonical_test_key",
    "snake_case",
    "split_words",
]
