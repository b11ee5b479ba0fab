"""
Tests for the Tokenizer and text helpers.
"""
import pytest

from textgen.services.errors import InvalidInputError
from textgen.services.tokenizer import (
    Tokenizer,
    TokenStats,
    get_token_stats,
    get_tokenizer,
    post_process,
)


class TestTokenizer:
    """Test suite for Tokenizer."""

    def test_word_tokenization_keeps_punctuation(self):
        """Test punctuation becomes standalone tokens."""
        tokens = Tokenizer().tokenize("Hello, world!")

        assert tokens == ["Hello", ",", "world", "!"]

    def test_case_folding(self):
        """Test preserve_case=False lowercases tokens."""
        tokens = Tokenizer().tokenize("Hello, World!", preserve_case=False)

        assert tokens == ["hello", ",", "world", "!"]

    def test_word_tokenization_without_punctuation(self):
        """Test punctuation is dropped when not preserved."""
        tokens = Tokenizer().tokenize("Hello, world!", preserve_punctuation=False)

        assert tokens == ["Hello", "world"]

    def test_whitespace_method(self):
        """Test whitespace method splits on whitespace runs only."""
        tokenizer = Tokenizer()

        assert tokenizer.tokenize("Hello, world!", method="whitespace",
                                  preserve_punctuation=False) == ["Hello,", "world!"]
        assert tokenizer.tokenize("Hello, world!", method="whitespace") == ["Hello", ",", "world", "!"]

    def test_whitespace_is_normalized(self):
        """Test whitespace is collapsed and trimmed first."""
        tokens = Tokenizer().tokenize("  a   b\n\tc ", method="whitespace")

        assert tokens == ["a", "b", "c"]

    def test_sentence_method(self):
        """Test sentence method splits on terminal punctuation."""
        sentences = Tokenizer().tokenize("Hello there. How are you? Fine!", method="sentence")

        assert sentences == ["Hello there.", "How are you?", "Fine!"]

    def test_sentence_method_skips_abbreviation(self):
        """Test titles like Mr. do not end a sentence."""
        sentences = Tokenizer().tokenize("Mr. Smith went home. He slept.", method="sentence")

        assert sentences == ["Mr. Smith went home.", "He slept."]

    def test_method_is_case_insensitive(self):
        """Test method names are matched case-insensitively."""
        assert Tokenizer().tokenize("a b", method="WORD") == ["a", "b"]

    @pytest.mark.parametrize("text", ["", None, 123])
    def test_invalid_text_raises(self, text):
        """Test empty or non-string input raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            Tokenizer().tokenize(text)

    def test_unknown_method_raises(self):
        """Test unknown method raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            Tokenizer().tokenize("hello", method="character")

    def test_is_sentence_end(self):
        """Test sentence-ending detection."""
        tokenizer = Tokenizer()

        assert tokenizer.is_sentence_end(".")
        assert tokenizer.is_sentence_end("?")
        assert not tokenizer.is_sentence_end(",")


class TestTokenizeIntoSentences:
    """Test suite for sentence-grouped tokenization."""

    def test_groups_tokens_by_sentence(self):
        """Test each sentence becomes its own token list."""
        result = Tokenizer().tokenize_into_sentences("The cat sat. The dog ran!")

        assert result == [["The", "cat", "sat", "."], ["The", "dog", "ran", "!"]]

    def test_case_folding(self):
        """Test sentences can be lowercased."""
        result = Tokenizer().tokenize_into_sentences("The Cat sat.", preserve_case=False)

        assert result == [["the", "cat", "sat", "."]]

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_input_returns_single_empty_sentence(self, text):
        """Test empty input gives [[]] rather than []."""
        assert Tokenizer().tokenize_into_sentences(text) == [[]]


class TestTokenHelpers:
    """Test suite for token statistics and post-processing."""

    def test_token_stats(self):
        """Test statistics over a token list."""
        stats = get_token_stats(["the", "cat", ".", "the"])

        assert stats.total_tokens == 4
        assert stats.word_tokens == 3
        assert stats.punctuation_tokens == 1
        assert stats.unique_tokens == 3
        assert stats.avg_token_length == pytest.approx(2.5)
        assert stats.vocabulary_diversity == pytest.approx(0.75)

    def test_token_stats_empty(self):
        """Test empty token list gives zeroed stats."""
        assert get_token_stats([]) == TokenStats()

    def test_post_process_punctuation_and_capitals(self):
        """Test spacing cleanup and sentence capitalization."""
        text = post_process(["hello", ",", "world", ".", "how", "are", "you", "?"])

        assert text == "Hello, world. How are you?"

    def test_post_process_collapses_whitespace(self):
        """Test residual whitespace is collapsed."""
        assert post_process(["a", "", "b"]) == "A b"

    def test_post_process_empty(self):
        """Test empty token list gives empty text."""
        assert post_process([]) == ""

    def test_get_tokenizer_singleton(self):
        """Test get_tokenizer returns a shared instance."""
        assert get_tokenizer() is get_tokenizer()
