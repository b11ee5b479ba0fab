"""
Tests for the fixed-order Markov model.
"""
import logging
import random
from collections import Counter

import pytest

from textgen.services.errors import (
    InsufficientDataError,
    InvalidInputError,
    InvalidModelDataError,
    NoValidStartStateError,
    UntrainedModelError,
)
from textgen.services.interfaces import GenerationContext
from textgen.services.markov import MarkovModel


@pytest.fixture
def abab_model(abab_tokens):
    model = MarkovModel(order=1)
    model.train(abab_tokens)
    return model


class TestMarkovTraining:
    """Test suite for chain construction."""

    @pytest.mark.parametrize("order", [0, -1, 1.5, "2", True])
    def test_invalid_order(self, order):
        """Test order must be a positive integer."""
        with pytest.raises(InvalidInputError):
            MarkovModel(order=order)

    def test_chain_counts(self, abab_model):
        """Test transition counts for a known sequence."""
        assert abab_model.chains == {"a": {"b": 2, "c": 1}, "b": {"a": 2}}
        assert abab_model.vocabulary == ["a", "b", "c"]
        assert abab_model.total_tokens == 6

    def test_too_few_tokens(self):
        """Test exactly `order` tokens is not enough."""
        with pytest.raises(InsufficientDataError):
            MarkovModel(order=2).train(["a", "b"])

    def test_minimum_tokens(self):
        """Test order + 1 tokens yields exactly one transition."""
        model = MarkovModel(order=2)
        model.train(["a", "b", "c"])

        assert model.chains == {"a b": {"c": 1}}

    def test_counts_match_ngram_frequencies(self, sample_tokens):
        """Test every count equals the observed (state, next) frequency."""
        order = 2
        model = MarkovModel(order=order)
        model.train(sample_tokens)

        expected = Counter(
            (" ".join(sample_tokens[i:i + order]), sample_tokens[i + order])
            for i in range(len(sample_tokens) - order)
        )
        actual = Counter({
            (state, nxt): count
            for state, transitions in model.chains.items()
            for nxt, count in transitions.items()
        })
        assert actual == expected

    def test_transition_probabilities_sum_to_one(self, sample_tokens):
        """Test per-state probabilities form a distribution."""
        model = MarkovModel(order=1)
        model.train(sample_tokens)

        for state in model.chains:
            total = sum(t.probability for t in model.get_transitions(state))
            assert total == pytest.approx(1.0)

    def test_unknown_state_has_no_transitions(self, abab_model):
        """Test unknown states return an empty list."""
        assert abab_model.get_transitions("zzz") == []

    def test_start_states(self):
        """Test states at the start and after sentence endings are recorded."""
        model = MarkovModel(order=1)
        model.train(["the", "cat", ".", "a", "dog", "."])

        assert model.get_start_states() == ["the", "a"]
        assert model.is_start_state("a")
        assert not model.is_start_state("cat")

    def test_start_states_can_be_disabled(self):
        """Test start-state tracking is optional."""
        model = MarkovModel(order=1)
        model.train(["the", "cat", ".", "a", "dog", "."], track_start_states=False)

        assert model.start_states == []

    def test_lowercases_by_default(self):
        """Test case folding unless case_sensitive."""
        model = MarkovModel(order=1)
        model.train(["The", "Cat", "the", "cat"])
        assert set(model.chains) == {"the", "cat"}

        model.train(["The", "Cat", "the", "cat"], case_sensitive=True)
        assert set(model.chains) == {"The", "Cat", "the"}

    def test_retrain_resets(self, abab_model):
        """Test training again discards the previous chain."""
        abab_model.train(["x", "y"])

        assert abab_model.chains == {"x": {"y": 1}}
        assert abab_model.vocabulary == ["x", "y"]

    def test_sequences_do_not_cross(self):
        """Test a list of sentences never links one sentence to the next."""
        model = MarkovModel(order=1)
        model.train([["a", "b", "c"], ["d", "e", "f"]])

        assert "c" not in model.chains
        assert model.get_start_states() == ["a", "d"]
        assert model.total_tokens == 6

    def test_sequences_all_too_short(self):
        """Test every sentence shorter than order + 1 raises."""
        with pytest.raises(InsufficientDataError):
            MarkovModel(order=1).train([["a"], ["b"]])

    def test_update_state(self):
        """Test the state window slides by one token."""
        assert MarkovModel(order=2).update_state("a b", "c") == "b c"


class TestMarkovGeneration:
    """Test suite for generation."""

    def test_untrained_raises(self):
        """Test generating before training raises UntrainedModelError."""
        with pytest.raises(UntrainedModelError):
            MarkovModel().generate()

    def test_empty_chain_raises(self):
        """Test a loaded model with no states has no start state."""
        model = MarkovModel.from_dict({"order": 1, "modelType": "markov", "chains": {}, "vocabulary": []})

        with pytest.raises(NoValidStartStateError):
            model.generate()

    def test_zero_temperature_is_deterministic(self, abab_model, no_random):
        """Test temperature 0 follows the most frequent transitions."""
        ctx = GenerationContext(prompt="a", temperature=0, max_tokens=6, min_tokens=0,
                                random_fn=no_random)

        result = abab_model.generate(ctx)

        assert result.tokens == ["a", "b", "a", "b", "a", "b"]
        assert result.finish_reason == "length"
        assert result.model == "markov"
        assert result.length == 6

    def test_prompt_is_case_folded(self, abab_model, no_random):
        """Test prompt matching ignores case for case-insensitive models."""
        ctx = GenerationContext(prompt="A", temperature=0, max_tokens=2, random_fn=no_random)

        assert abab_model.generate(ctx).tokens == ["a", "b"]

    def test_unknown_prompt_falls_back_to_start_state(self, abab_model):
        """Test an unmatched prompt starts from a start state."""
        ctx = GenerationContext(prompt="zzz", temperature=0, max_tokens=2, random_fn=lambda: 0.0)

        assert abab_model.generate(ctx).tokens[0] == "a"

    def test_same_seed_same_output(self, sample_tokens):
        """Test identical random sources give identical output."""
        model = MarkovModel(order=1)
        model.train(sample_tokens)

        def run():
            ctx = GenerationContext(max_tokens=20, min_tokens=5,
                                    random_fn=random.Random(7).random)
            return model.generate(ctx).tokens

        assert run() == run()

    def test_stop_token_ignored_before_min_tokens(self, no_random):
        """Test stop tokens only end generation once min_tokens is reached."""
        model = MarkovModel(order=1)
        model.train(["x", ".", "x", ".", "x", "."])
        ctx = GenerationContext(prompt="x", temperature=0, max_tokens=10, min_tokens=5,
                                random_fn=no_random)

        result = model.generate(ctx)

        assert result.tokens == ["x", ".", "x", ".", "x", "."]
        assert result.finish_reason == "stop"

    def test_stop_token_ends_generation(self, no_random):
        """Test a stop token ends generation when min_tokens is 0."""
        model = MarkovModel(order=1)
        model.train(["the", "cat", ".", "the", "dog", "."])
        ctx = GenerationContext(prompt="the", temperature=0, max_tokens=10, min_tokens=0,
                                random_fn=no_random)

        result = model.generate(ctx)

        assert result.tokens == ["the", "cat", "."]
        assert result.text == "The cat."
        assert result.finish_reason == "stop"

    def test_repetition_guard_terminates(self, no_random):
        """Test rejected repeats still count toward the attempt cap."""
        model = MarkovModel(order=1)
        model.train(["a", "a", "a", "b"])
        ctx = GenerationContext(prompt="a", temperature=0, max_tokens=5, min_tokens=0,
                                allow_repetition=False, random_fn=no_random)

        result = model.generate(ctx)

        assert result.tokens == ["a"]
        assert result.metadata["attempts"] == 15

    def test_repetition_guard_blocks_repeats(self):
        """Test no token immediately repeats when repetition is disallowed."""
        model = MarkovModel(order=1)
        model.train(["a", "a", "a", "b", "a", "a", "b", "c", "a"])
        ctx = GenerationContext(max_tokens=30, min_tokens=0, stop=(), allow_repetition=False,
                                random_fn=random.Random(3).random)

        tokens = model.generate(ctx).tokens

        assert all(tokens[i] != tokens[i + 1] for i in range(len(tokens) - 1))

    def test_dead_end_recovers_from_start_state(self):
        """Test a state with no transitions jumps back to a start state."""
        model = MarkovModel(order=1)
        model.train(["a", "b", "c"])
        ctx = GenerationContext(temperature=0, max_tokens=7, min_tokens=0, stop=(),
                                random_fn=lambda: 0.0)

        result = model.generate(ctx)

        assert result.tokens == ["a", "b", "c", "b", "c", "b", "c"]
        assert result.finish_reason == "length"

    def test_start_state_longer_than_max_tokens(self):
        """Test the seeded start state is cut to max_tokens."""
        model = MarkovModel(order=3)
        model.train(["a", "b", "c", "d", "e"])
        ctx = GenerationContext(max_tokens=2, min_tokens=0, random_fn=lambda: 0.0)

        result = model.generate(ctx)

        assert result.tokens == ["a", "b"]
        assert result.length == 2

    def test_generation_does_not_mutate(self, abab_model):
        """Test generation leaves the chain untouched."""
        before = abab_model.to_dict()
        abab_model.generate(GenerationContext(max_tokens=10, min_tokens=0))

        assert abab_model.to_dict() == before


class TestMarkovPersistence:
    """Test suite for to_dict/from_dict."""

    def test_round_trip(self, sample_tokens):
        """Test a restored model is identical."""
        model = MarkovModel(order=2)
        model.train(sample_tokens)

        restored = MarkovModel.from_dict(model.to_dict())

        assert restored.order == model.order
        assert restored.chains == model.chains
        assert restored.start_states == model.start_states
        assert restored.vocabulary == model.vocabulary
        assert restored.total_tokens == model.total_tokens
        assert restored.to_dict() == model.to_dict()

    def test_restored_model_generates_identically(self, sample_tokens):
        """Test restored model reproduces generation with the same seed."""
        model = MarkovModel(order=1)
        model.train(sample_tokens)
        restored = MarkovModel.from_json(model.to_json())

        def ctx():
            return GenerationContext(max_tokens=15, min_tokens=0, random_fn=random.Random(11).random)

        assert restored.generate(ctx()).tokens == model.generate(ctx()).tokens

    @pytest.mark.parametrize("data", [
        "nope",
        {"order": 0, "chains": {}, "vocabulary": []},
        {"order": "2", "chains": {}, "vocabulary": []},
        {"order": 2, "vocabulary": []},
        {"order": 2, "chains": [], "vocabulary": []},
        {"order": 2, "chains": {}},
        {"order": 2, "chains": {}, "vocabulary": [], "startStates": "a"},
    ])
    def test_invalid_data_raises(self, data):
        """Test structural problems raise InvalidModelDataError."""
        with pytest.raises(InvalidModelDataError):
            MarkovModel.from_dict(data)

    def test_malformed_state_is_skipped(self, caplog):
        """Test a bad per-state map is skipped with a warning."""
        data = {
            "order": 1,
            "modelType": "markov",
            "chains": {"a": {"b": 2}, "b": "oops", "c": {"d": -1}, "d": {"a": 1.5}},
            "vocabulary": ["a", "b", "c", "d"],
        }

        with caplog.at_level(logging.WARNING):
            model = MarkovModel.from_dict(data)

        assert model.chains == {"a": {"b": 2}}
        assert "Skipping invalid transitions" in caplog.text

    def test_wrong_arity_states_are_skipped(self, caplog):
        """Test state keys without exactly `order` tokens are dropped on load."""
        data = {
            "order": 1,
            "modelType": "markov",
            "chains": {"a": {"b": 1}, "a b": {"a": 1}, "b": {"a": 1}},
            "vocabulary": ["a", "b"],
            "startStates": ["a", "a b"],
        }

        with caplog.at_level(logging.WARNING):
            model = MarkovModel.from_dict(data)

        assert set(model.chains) == {"a", "b"}
        assert model.start_states == ["a"]
        assert "expected 1 tokens" in caplog.text

    def test_string_counts_are_accepted(self):
        """Test numeric strings are parsed as counts."""
        model = MarkovModel.from_dict({"order": 1, "chains": {"a": {"b": "3"}}, "vocabulary": ["a", "b"]})

        assert model.chains == {"a": {"b": 3}}

    def test_stats(self, abab_model):
        """Test summary statistics."""
        stats = abab_model.get_stats()

        assert stats["model_type"] == "markov"
        assert stats["order"] == 1
        assert stats["total_states"] == 2
        assert stats["vocabulary_size"] == 3
        assert stats["avg_transitions_per_state"] == pytest.approx(1.5)
