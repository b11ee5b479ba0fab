"""
Model contract shared by every text generation model.

Each variant (markov, hmm, vlmm) implements TextModel; callers pick a
variant by its model_type tag and only use the methods declared here.
"""
from __future__ import annotations

import json
import math
import random
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from textgen.config import SENTENCE_ENDINGS
from textgen.utils.logger import setup_logger
from .errors import InvalidInputError, InvalidModelDataError
from .sampling import RandomFn
from .tokenizer import post_process

logger = setup_logger(__name__)

# camelCase option names accepted for compatibility with persisted requests
_CONTEXT_ALIASES = {
    "randomFn": "random_fn",
    "allowRepetition": "allow_repetition",
    "stop_tokens": "stop",
    "maxTokens": "max_tokens",
    "minTokens": "min_tokens",
}


def split_sequences(tokens: Sequence) -> List[List[str]]:
    """
    Normalize training input into a list of token sequences.

    Accepts a flat token list or a list of token lists (one per sentence).
    """
    if not isinstance(tokens, (list, tuple)):
        raise InvalidInputError("Input tokens must be a list of strings.")

    if any(isinstance(t, (list, tuple)) for t in tokens):
        if not all(isinstance(t, (list, tuple)) for t in tokens):
            raise InvalidInputError("Cannot mix tokens and token sequences.")
        sequences = [list(seq) for seq in tokens]
    else:
        sequences = [list(tokens)]

    for seq in sequences:
        if any(not isinstance(t, str) for t in seq):
            raise InvalidInputError("Input tokens must be a list of strings.")
    return sequences


@dataclass(frozen=True)
class GenerationContext:
    """Immutable parameters for one generation call."""
    max_tokens: int = 100
    min_tokens: int = 50
    stop: Tuple[str, ...] = SENTENCE_ENDINGS
    prompt: Optional[str] = None
    temperature: float = 1.0
    random_fn: RandomFn = random.random
    allow_repetition: bool = True

    def __post_init__(self):
        if not isinstance(self.max_tokens, int) or self.max_tokens < 1:
            raise InvalidInputError("max_tokens must be at least 1")
        if not isinstance(self.min_tokens, int) or self.min_tokens < 0:
            raise InvalidInputError("min_tokens must be a non-negative integer")
        if (
            isinstance(self.temperature, bool)
            or not isinstance(self.temperature, (int, float))
            or math.isnan(self.temperature)
            or self.temperature < 0
        ):
            raise InvalidInputError("temperature must be a non-negative number")
        if not callable(self.random_fn):
            raise InvalidInputError("random_fn must be callable")
        object.__setattr__(self, "stop", tuple(self.stop or ()))

    @classmethod
    def from_options(cls, **options: Any) -> "GenerationContext":
        """
        Build a context from loose keyword options.

        None values fall back to defaults; camelCase aliases are accepted.
        """
        kwargs = {}
        for key, value in options.items():
            key = _CONTEXT_ALIASES.get(key, key)
            if key not in cls.__dataclass_fields__:
                raise InvalidInputError(f"Unknown generation option: {key}")
            if value is not None:
                kwargs[key] = value
        return cls(**kwargs)


@dataclass
class GenerationResult:
    """Generated text plus metadata."""
    text: str
    tokens: List[str] = field(default_factory=list)
    length: int = 0
    model: str = "unknown"
    finish_reason: str = "unknown"
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ModelCapabilities:
    """Fixed descriptor of what a model variant supports."""
    supports_temperature: bool
    supports_constraints: bool
    supports_conditional_generation: bool
    supports_batch_generation: bool
    max_order: Optional[int]
    model_type: str
    supports_unsupervised_learning: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TextModel(ABC):
    """
    Base class for all text generation models.

    Lifecycle: construct with hyperparameters, populate with train() (a full
    reset every call) or from_dict(), then generate() any number of times.
    Generation never mutates model state.
    """

    model_type: str = "unknown"

    @abstractmethod
    def train(self, tokens: Sequence, **options: Any) -> None:
        """Train from a token sequence (or a sequence of token sequences)."""

    @abstractmethod
    def generate(self, context: Optional[GenerationContext] = None) -> GenerationResult:
        """Generate text from the trained model."""

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain JSON-compatible data."""

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextModel":
        """Rebuild a model from to_dict() output."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the model."""

    @abstractmethod
    def get_capabilities(self) -> ModelCapabilities:
        """Get the model's capability descriptor."""

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, s: str) -> "TextModel":
        try:
            raw = json.loads(s)
        except (TypeError, json.JSONDecodeError) as e:
            raise InvalidModelDataError(f"Invalid JSON model data: {e}") from e
        return cls.from_dict(raw)

    def post_process(self, tokens: List[str]) -> str:
        return post_process(tokens)

    def generate_samples(
        self,
        count: int,
        context: Optional[GenerationContext] = None,
    ) -> List[GenerationResult]:
        """
        Generate several samples; any sample that raises becomes an error entry.

        Args:
            count: Number of samples
            context: Generation parameters shared by all samples

        Returns:
            One GenerationResult per sample
        """
        if not isinstance(count, int) or count < 1:
            raise InvalidInputError("count must be a positive integer")

        context = context or GenerationContext()
        results = []
        for i in range(count):
            try:
                results.append(self.generate(context))
            except Exception as e:
                logger.warning(f"[{self.model_type.upper()}] Sample {i + 1} failed: {e}")
                results.append(GenerationResult(
                    text="",
                    model=self.model_type,
                    finish_reason="error",
                    error=str(e),
                ))
        return results
