"""
Fixed-order Markov chain text generator (CPU-only).

States are `order` consecutive tokens joined by a single space; each state
maps next-token -> occurrence count. Tracks sentence-start states so that
generation opens on plausible sentence beginnings.
Supports temperature, stop tokens, repetition guard; persistence: JSON-friendly.
"""
from __future__ import annotations

from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from textgen.config import SENTENCE_ENDINGS
from textgen.utils.logger import setup_logger
from .errors import (
    InsufficientDataError,
    InvalidInputError,
    InvalidModelDataError,
    NoValidStartStateError,
    UntrainedModelError,
)
from .interfaces import (
    GenerationContext,
    GenerationResult,
    ModelCapabilities,
    TextModel,
    split_sequences,
)
from .sampling import RandomFn, parse_count, sample_from_counts

logger = setup_logger(__name__)


class Transition(NamedTuple):
    token: str
    probability: float
    count: int


class MarkovModel(TextModel):
    """
    N-gram frequency model of a fixed order.

    Usage:
        model = MarkovModel(order=2)
        model.train(tokens)
        result = model.generate(GenerationContext(max_tokens=30))
    """

    model_type = "markov"
    MAX_ORDER = 10

    def __init__(self, order: int = 2):
        if isinstance(order, bool) or not isinstance(order, int) or order < 1:
            raise InvalidInputError("Markov chain order must be a positive integer")

        self.order = order
        # state -> {next_token: count}
        self.chains: Dict[str, Dict[str, int]] = {}
        self.start_states: List[str] = []
        self.total_tokens = 0
        self.vocabulary: List[str] = []
        self.case_sensitive = False
        self._trained = False

    def get_capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            supports_temperature=True,
            supports_constraints=True,
            supports_conditional_generation=True,
            supports_batch_generation=True,
            max_order=self.MAX_ORDER,
            model_type=self.model_type,
        )

    # --- training ---
    def train(
        self,
        tokens: Sequence,
        case_sensitive: bool = False,
        track_start_states: bool = True,
    ) -> None:
        """
        Build the chain from scratch, discarding anything learned before.

        Args:
            tokens: Token list, or list of token lists (one per sentence)
            case_sensitive: Keep token casing (lowercase otherwise)
            track_start_states: Record sentence-start states
        """
        sequences = split_sequences(tokens)
        if not any(len(seq) >= self.order + 1 for seq in sequences):
            raise InsufficientDataError(
                f"Need at least {self.order + 1} tokens to build chain of order {self.order}"
            )

        if not case_sensitive:
            sequences = [[t.lower() for t in seq] for seq in sequences]

        self.chains = {}
        self.case_sensitive = case_sensitive
        self.total_tokens = sum(len(seq) for seq in sequences)
        self.vocabulary = list(dict.fromkeys(t for seq in sequences for t in seq))

        start_states: Dict[str, None] = {}
        for seq in sequences:
            is_start = True
            for i in range(len(seq) - self.order):
                state = " ".join(seq[i : i + self.order])
                nxt = seq[i + self.order]

                if track_start_states and is_start:
                    start_states[state] = None
                is_start = seq[i] in SENTENCE_ENDINGS

                transitions = self.chains.setdefault(state, {})
                transitions[nxt] = transitions.get(nxt, 0) + 1

        self.start_states = list(start_states)
        self._trained = True

        logger.info(
            f"[MARKOV] Built chain: {len(self.chains)} states, "
            f"{len(self.vocabulary)} unique tokens, {len(self.start_states)} start states"
        )

    # --- chain queries ---
    def get_transitions(self, state: str) -> List[Transition]:
        """Next-token distribution for a state (empty for unknown states)."""
        transitions = self.chains.get(state)
        if not transitions:
            return []

        total = sum(transitions.values())
        return [Transition(token, count / total, count) for token, count in transitions.items()]

    def get_random_start_state(self, random_fn: RandomFn) -> Optional[str]:
        """Random sentence-start state, else any state, else None."""
        pool = self.start_states or list(self.chains.keys())
        if not pool:
            return None
        return pool[min(int(random_fn() * len(pool)), len(pool) - 1)]

    def get_start_states(self) -> List[str]:
        return list(self.start_states)

    def is_start_state(self, state: str) -> bool:
        return state in self.start_states

    def update_state(self, state: str, token: str) -> str:
        """Slide the window: drop the oldest token, append the new one."""
        return " ".join(state.split(" ")[1:] + [token])

    # --- generation ---
    def generate(self, context: Optional[GenerationContext] = None) -> GenerationResult:
        """
        Generate text with the state machine: initialize, sample, guard
        repetition, recover from dead ends, stop on length or stop token.

        Args:
            context: Generation parameters

        Returns:
            GenerationResult with final_state and attempts in metadata
        """
        context = context or GenerationContext()

        if not self._trained:
            raise UntrainedModelError("Model has not been trained")
        if not self.chains:
            raise NoValidStartStateError("Model has no trained data")

        random_fn = context.random_fn
        state = self._initialize_state(context.prompt, random_fn)
        if state is None:
            raise NoValidStartStateError("Could not find a valid starting state")

        generated = state.split(" ")[: context.max_tokens]
        attempts = 0
        max_attempts = context.max_tokens * 3
        finish_reason = "length"

        while len(generated) < context.max_tokens and attempts < max_attempts:
            attempts += 1

            next_token = self.sample_next_token(state, context.temperature, random_fn)
            if next_token is None:
                # Dead end: jump to a fresh start state
                new_state = self.get_random_start_state(random_fn)
                if new_state is None:
                    break
                state = new_state
                continue

            if not context.allow_repetition and generated and generated[-1] == next_token:
                continue

            generated.append(next_token)

            if len(generated) >= context.min_tokens and next_token in context.stop:
                finish_reason = "stop"
                break

            state = self.update_state(state, next_token)

        return GenerationResult(
            text=self.post_process(generated),
            tokens=generated,
            length=len(generated),
            model=self.model_type,
            finish_reason=finish_reason,
            metadata={"final_state": state, "attempts": attempts},
        )

    def sample_next_token(
        self,
        state: str,
        temperature: float,
        random_fn: RandomFn,
    ) -> Optional[str]:
        return sample_from_counts(self.chains.get(state, {}), temperature, random_fn)

    def _initialize_state(self, prompt: Optional[str], random_fn: RandomFn) -> Optional[str]:
        if prompt:
            if not self.case_sensitive:
                prompt = prompt.lower()
            prompt_tokens = prompt.split()
            if len(prompt_tokens) >= self.order:
                proposed = " ".join(prompt_tokens[-self.order :])
                if proposed in self.chains:
                    return proposed

        return self.get_random_start_state(random_fn)

    # --- stats / persistence ---
    def get_stats(self) -> Dict[str, Any]:
        total_transitions = sum(len(t) for t in self.chains.values())
        return {
            "model_type": self.model_type,
            "order": self.order,
            "total_states": len(self.chains),
            "vocabulary_size": len(self.vocabulary),
            "total_tokens": self.total_tokens,
            "start_states": len(self.start_states),
            "avg_transitions_per_state": (
                total_transitions / len(self.chains) if self.chains else 0
            ),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "modelType": self.model_type,
            "chains": {state: dict(trans) for state, trans in self.chains.items()},
            "startStates": list(self.start_states),
            "totalTokens": self.total_tokens,
            "vocabulary": list(self.vocabulary),
            "caseSensitive": self.case_sensitive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarkovModel":
        """
        Rebuild from to_dict() output.

        Malformed per-state transition maps are skipped with a warning;
        any other structural problem raises InvalidModelDataError.
        """
        if not isinstance(data, dict):
            raise InvalidModelDataError("Invalid model data: must be an object.")

        order = data.get("order")
        if isinstance(order, bool) or not isinstance(order, int) or order < 1:
            raise InvalidModelDataError("Invalid model data: order must be a positive integer.")

        chains = data.get("chains")
        if not isinstance(chains, dict):
            raise InvalidModelDataError("Invalid model data: chains object is missing or invalid.")

        vocabulary = data.get("vocabulary")
        if not isinstance(vocabulary, list):
            raise InvalidModelDataError("Invalid model data: missing or invalid vocabulary.")

        start_states = data.get("startStates", [])
        if not isinstance(start_states, list):
            raise InvalidModelDataError("Invalid model data: startStates must be a list.")

        model = cls(order=order)
        model.total_tokens = int(data.get("totalTokens") or 0)
        model.vocabulary = list(vocabulary)
        model.case_sensitive = bool(data.get("caseSensitive", False))

        for state, transitions in chains.items():
            if not model._is_valid_state(state):
                logger.warning(f"[MARKOV] Skipping state '{state}': expected {order} tokens")
                continue
            parsed = cls._parse_transitions(transitions)
            if parsed is None:
                logger.warning(f"[MARKOV] Skipping invalid transitions for state '{state}'")
                continue
            model.chains[state] = parsed

        model.start_states = [s for s in start_states if model._is_valid_state(s)]
        if len(model.start_states) != len(start_states):
            logger.warning(
                f"[MARKOV] Dropped {len(start_states) - len(model.start_states)} start states "
                f"that do not have {order} tokens"
            )

        model._trained = True
        return model

    def _is_valid_state(self, state: Any) -> bool:
        return isinstance(state, str) and len(state.split(" ")) == self.order

    @staticmethod
    def _parse_transitions(transitions: Any) -> Optional[Dict[str, int]]:
        if not isinstance(transitions, dict) or not transitions:
            return None

        parsed = {}
        for token, count in transitions.items():
            value = parse_count(count)
            if value is None:
                return None
            parsed[token] = value
        return parsed
