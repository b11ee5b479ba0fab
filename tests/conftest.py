"""
Shared pytest fixtures for text generation tests.
"""
import random
from typing import Callable, List

import pytest


SAMPLE_TEXT = (
    "The cat sat on the mat. The dog sat on the log! "
    "Did the cat see the dog? The dog saw the cat. "
    "Mr. Smith fed the cat and the dog."
)


@pytest.fixture
def sample_text() -> str:
    """Small multi-sentence corpus."""
    return SAMPLE_TEXT


@pytest.fixture
def sample_tokens() -> List[str]:
    """Lowercased word/punctuation tokens of the sample corpus."""
    return (
        "the cat sat on the mat . the dog sat on the log ! "
        "did the cat see the dog ? the dog saw the cat ."
    ).split()


@pytest.fixture
def abab_tokens() -> List[str]:
    """Tokens with chain a -> {b: 2, c: 1}, b -> {a: 2} at order 1."""
    return ["a", "b", "a", "b", "a", "c"]


@pytest.fixture
def seeded_random() -> Callable[[], float]:
    """Deterministic random source."""
    return random.Random(42).random


@pytest.fixture
def no_random() -> Callable[[], float]:
    """Random source that fails the test if it is ever consulted."""
    def _fail() -> float:
        raise AssertionError("random source should not be used")
    return _fail


@pytest.fixture
def model_dir(tmp_path):
    """Temporary directory for persisted models."""
    path = tmp_path / "models"
    path.mkdir()
    return path
