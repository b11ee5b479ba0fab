"""
Tokenizer for raw corpus text.

Supports three methods:
- word: \\w+ runs, optionally with punctuation as standalone tokens
- whitespace: split on runs of whitespace only
- sentence: split on sentence-terminal punctuation

Sentence splitting uses a lookbehind heuristic that skips common
abbreviations ("Mr.", "e.g.") but is approximate and can mis-split.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from textgen.config import SENTENCE_ENDINGS
from .errors import InvalidInputError

WORD_PATTERN = re.compile(r"\w+")
WORD_PUNCT_PATTERN = re.compile(r"\w+|[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")
PUNCTUATION_PATTERN = re.compile(r"""([.!?;:,'"()\[\]{}])""")
SENTENCE_SPLIT_PATTERN = re.compile(r"(?<!\w\.\w.)(?<![A-Z][a-z]\.)(?<=[.?!])\s+")

TOKENIZE_METHODS = ("word", "whitespace", "sentence")


@dataclass
class TokenStats:
    """Summary statistics for a token sequence."""
    total_tokens: int = 0
    word_tokens: int = 0
    punctuation_tokens: int = 0
    unique_tokens: int = 0
    avg_token_length: float = 0.0
    vocabulary_diversity: float = 0.0


class Tokenizer:
    """Converts raw text into tokens or sentence-grouped tokens."""

    def __init__(self):
        self.sentence_endings = set(SENTENCE_ENDINGS)

    def tokenize(
        self,
        text: str,
        method: str = "word",
        preserve_punctuation: bool = True,
        preserve_case: bool = True,
    ) -> List[str]:
        """
        Tokenize text.

        Args:
            text: Raw input text
            method: 'word', 'whitespace' or 'sentence'
            preserve_punctuation: Keep punctuation as separate tokens
            preserve_case: Keep original casing (lowercase otherwise)

        Returns:
            List of non-empty tokens
        """
        if not isinstance(text, str) or not text:
            raise InvalidInputError("Input text must be a non-empty string.")
        if not isinstance(method, str) or method.lower() not in TOKENIZE_METHODS:
            raise InvalidInputError(f"Unknown tokenization method: {method}")

        method = method.lower()
        processed = self.normalize_whitespace(text)

        if method == "sentence":
            # Padding would hide abbreviations from the split heuristic
            tokens = self.tokenize_by_sentence(processed)
        else:
            if preserve_punctuation:
                processed = self.handle_punctuation(processed)
            if method == "whitespace":
                tokens = self.tokenize_by_whitespace(processed)
            else:
                tokens = self.tokenize_by_word(processed, preserve_punctuation)

        if not preserve_case:
            tokens = [token.lower() for token in tokens]

        return [token for token in tokens if token]

    def tokenize_into_sentences(
        self,
        text: str,
        preserve_punctuation: bool = True,
        preserve_case: bool = True,
    ) -> List[List[str]]:
        """
        Tokenize text into sentences of word tokens.

        Always returns at least [[]] so callers never special-case empty input.
        """
        if not isinstance(text, str) or not text.strip():
            return [[]]

        sentences = self.tokenize_by_sentence(self.normalize_whitespace(text))

        result = []
        for sentence in sentences:
            processed = self.normalize_whitespace(sentence)
            if preserve_punctuation:
                processed = self.handle_punctuation(processed)
            words = self.tokenize_by_word(processed, preserve_punctuation)
            result.append(words if preserve_case else [w.lower() for w in words])

        return result or [[]]

    def tokenize_by_whitespace(self, text: str) -> List[str]:
        return WHITESPACE_PATTERN.split(text.strip())

    def tokenize_by_word(self, text: str, preserve_punctuation: bool = True) -> List[str]:
        if preserve_punctuation:
            return WORD_PUNCT_PATTERN.findall(text)
        return WORD_PATTERN.findall(text)

    def tokenize_by_sentence(self, text: str) -> List[str]:
        sentences = SENTENCE_SPLIT_PATTERN.split(text)
        return [s.strip() for s in sentences if s.strip()]

    def normalize_whitespace(self, text: str) -> str:
        return WHITESPACE_PATTERN.sub(" ", text).strip()

    def handle_punctuation(self, text: str) -> str:
        """Pad punctuation with spaces so it tokenizes as standalone units."""
        return PUNCTUATION_PATTERN.sub(r" \1 ", text)

    def is_sentence_end(self, token: str) -> bool:
        return token in self.sentence_endings


def get_token_stats(tokens: List[str]) -> TokenStats:
    """
    Compute statistics for a token list.

    Args:
        tokens: Token sequence

    Returns:
        TokenStats (all zeros for an empty list)
    """
    if not tokens:
        return TokenStats()

    unique = set(tokens)
    return TokenStats(
        total_tokens=len(tokens),
        word_tokens=sum(1 for t in tokens if re.search(r"\w", t)),
        punctuation_tokens=sum(1 for t in tokens if re.fullmatch(r"[^\w\s]+", t)),
        unique_tokens=len(unique),
        avg_token_length=sum(len(t) for t in tokens) / len(tokens),
        vocabulary_diversity=len(unique) / len(tokens),
    )


def post_process(tokens: List[str]) -> str:
    """
    Turn generated tokens into readable text.

    Removes spaces before closing punctuation, spaces sentence and clause
    punctuation, capitalizes sentence starts and collapses whitespace.
    """
    if not tokens:
        return ""

    text = " ".join(tokens)
    text = re.sub(r"""\s+([.!?;:,'")\]}])""", r"\1", text)
    text = re.sub(r"([.!?;:,])(\w)", r"\1 \2", text)
    text = re.sub(r"""\s+(['"])""", r" \1", text)
    text = re.sub(r"""(['"()])\s+""", r"\1 ", text)
    text = re.sub(r"([.!?])\s+(\w)", lambda m: f"{m.group(1)} {m.group(2).upper()}", text)
    text = re.sub(r"^\w", lambda m: m.group(0).upper(), text)
    text = re.sub(r"\s+", " ", text).strip()

    return text


# Singleton tokenizer
_TOKENIZER: Optional[Tokenizer] = None


def get_tokenizer() -> Tokenizer:
    """Get or create the shared tokenizer."""
    global _TOKENIZER
    if _TOKENIZER is None:
        _TOKENIZER = Tokenizer()
    return _TOKENIZER
