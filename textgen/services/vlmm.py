"""
Variable-Length Markov Model (VLMM) text generator.

Training stores, for every position, the next token under each preceding
context of length 0..order in a context trie. Generation backs off from the
longest matching suffix of the history to shorter ones, down to the empty
context (unigram counts).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from textgen.utils.logger import setup_logger
from .errors import (
    InsufficientDataError,
    InvalidInputError,
    InvalidModelDataError,
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


class VLMMNode:
    """Context trie node: children keyed by token, plus next-token counts."""

    def __init__(self):
        self.children: Dict[str, "VLMMNode"] = {}
        self.next_counts: Dict[str, int] = {}

    def add_context(self, context: Sequence[str], next_token: str):
        node = self
        for token in context:
            node = node.children.setdefault(token, VLMMNode())
        node.next_counts[next_token] = node.next_counts.get(next_token, 0) + 1

    def get_node(self, context: Sequence[str]) -> Optional["VLMMNode"]:
        node = self
        for token in context:
            node = node.children.get(token)
            if node is None:
                return None
        return node

    def count_nodes(self) -> int:
        return 1 + sum(child.count_nodes() for child in self.children.values())

    def count_transitions(self) -> int:
        return len(self.next_counts) + sum(c.count_transitions() for c in self.children.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nextCounts": dict(self.next_counts),
            "children": {token: child.to_dict() for token, child in self.children.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VLMMNode":
        if not isinstance(data, dict):
            raise InvalidModelDataError("Invalid model data: trie node must be an object.")

        next_counts = data.get("nextCounts") or {}
        children = data.get("children") or {}
        if not isinstance(next_counts, dict) or not isinstance(children, dict):
            raise InvalidModelDataError("Invalid model data: malformed trie node.")

        node = cls()
        for token, count in next_counts.items():
            parsed = parse_count(count)
            if parsed is None:
                raise InvalidModelDataError(
                    f"Invalid model data: trie count for {token!r} must be a positive integer."
                )
            node.next_counts[token] = parsed
        node.children = {token: cls.from_dict(child) for token, child in children.items()}
        return node


class VLMModel(TextModel):
    """
    Variable-order Markov model with longest-suffix back-off.

    Usage:
        model = VLMModel(order=4)
        model.train(tokens)
        result = model.generate(GenerationContext(prompt="once upon a"))
    """

    model_type = "vlmm"
    MAX_ORDER = 10

    def __init__(self, order: int = 5):
        if isinstance(order, bool) or not isinstance(order, int) or not 1 <= order <= self.MAX_ORDER:
            raise InvalidInputError(f"order must be a positive integer between 1 and {self.MAX_ORDER}")

        self.order = order
        self.root = VLMMNode()
        self.total_tokens = 0
        self.vocabulary: List[str] = []
        self.case_sensitive = False

    def get_capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            supports_temperature=True,
            supports_constraints=False,
            supports_conditional_generation=True,
            supports_batch_generation=True,
            max_order=self.MAX_ORDER,
            model_type=self.model_type,
        )

    def train(self, tokens: Sequence, case_sensitive: bool = False) -> None:
        """
        Rebuild the context trie from scratch.

        Args:
            tokens: Token list, or list of token lists (contexts never cross lists)
            case_sensitive: Keep token casing (lowercase otherwise)
        """
        sequences = [seq for seq in split_sequences(tokens) if seq]
        if not sequences:
            raise InsufficientDataError("Training tokens must be a non-empty list")

        if not case_sensitive:
            sequences = [[t.lower() for t in seq] for seq in sequences]

        self.root = VLMMNode()
        self.case_sensitive = case_sensitive
        self.total_tokens = sum(len(seq) for seq in sequences)
        self.vocabulary = list(dict.fromkeys(t for seq in sequences for t in seq))

        for seq in sequences:
            for i, next_token in enumerate(seq):
                for k in range(0, min(self.order, i) + 1):
                    self.root.add_context(seq[i - k : i], next_token)

        logger.info(
            f"[VLMM] Built trie: {self.root.count_nodes()} nodes, "
            f"{len(self.vocabulary)} unique tokens, max order {self.order}"
        )

    def sample_next_token(
        self,
        history: Sequence[str],
        temperature: float,
        random_fn: RandomFn,
    ) -> Optional[str]:
        """Sample from the longest suffix of history that has recorded counts."""
        history = list(history)[-self.order :] if history else []
        for k in range(len(history), -1, -1):
            node = self.root.get_node(history[len(history) - k :])
            if node is not None and node.next_counts:
                return sample_from_counts(node.next_counts, temperature, random_fn)
        return None

    def generate(self, context: Optional[GenerationContext] = None) -> GenerationResult:
        """
        Generate text, seeding the history from the prompt when given.

        Args:
            context: Generation parameters

        Returns:
            GenerationResult with attempts in metadata
        """
        context = context or GenerationContext()
        if self.total_tokens == 0:
            raise UntrainedModelError("VLMM is not trained")

        random_fn = context.random_fn
        generated: List[str] = []

        if context.prompt:
            prompt = context.prompt if self.case_sensitive else context.prompt.lower()
            generated.extend(prompt.split()[: context.max_tokens])

        finish_reason = "length"
        attempts = 0

        while len(generated) < context.max_tokens and attempts < context.max_tokens * 3:
            attempts += 1
            next_token = self.sample_next_token(generated, context.temperature, random_fn)

            if next_token is None:
                finish_reason = "no_transitions"
                break

            if not context.allow_repetition and generated and generated[-1] == next_token:
                continue

            generated.append(next_token)

            if len(generated) >= context.min_tokens and next_token in context.stop:
                finish_reason = "stop"
                break

        return GenerationResult(
            text=self.post_process(generated),
            tokens=generated,
            length=len(generated),
            model=self.model_type,
            finish_reason=finish_reason,
            metadata={"attempts": attempts},
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type,
            "order": self.order,
            "vocabulary_size": len(self.vocabulary),
            "total_tokens": self.total_tokens,
            "total_nodes": self.root.count_nodes(),
            "total_transitions": self.root.count_transitions(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "modelType": self.model_type,
            "totalTokens": self.total_tokens,
            "vocabulary": list(self.vocabulary),
            "caseSensitive": self.case_sensitive,
            "trie": self.root.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VLMModel":
        if not isinstance(data, dict):
            raise InvalidModelDataError("Invalid model data: must be an object.")

        order = data.get("order")
        if isinstance(order, bool) or not isinstance(order, int) or not 1 <= order <= cls.MAX_ORDER:
            raise InvalidModelDataError("Invalid model data: order must be an integer between 1 and 10.")

        vocabulary = data.get("vocabulary")
        if not isinstance(vocabulary, list):
            raise InvalidModelDataError("Invalid model data: missing or invalid vocabulary.")

        model = cls(order=order)
        model.total_tokens = int(data.get("totalTokens") or 0)
        model.vocabulary = list(vocabulary)
        model.case_sensitive = bool(data.get("caseSensitive", False))
        model.root = VLMMNode.from_dict(data.get("trie") or {})
        return model
