"""
Model-type registry: maps the modelType tag to its implementation.
"""
from __future__ import annotations

from typing import Any, Dict, Type

from .errors import InvalidInputError
from .hmm import HiddenMarkovModel
from .interfaces import TextModel
from .markov import MarkovModel
from .vlmm import VLMModel

MODEL_TYPES: Dict[str, Type[TextModel]] = {
    "markov": MarkovModel,
    "hmm": HiddenMarkovModel,
    "vlmm": VLMModel,
}


def get_model_class(model_type: str) -> Type[TextModel]:
    """Resolve a modelType tag, raising InvalidInputError for unknown tags."""
    try:
        return MODEL_TYPES[model_type]
    except (KeyError, TypeError):
        raise InvalidInputError(
            f"Unknown model type: {model_type!r} (expected one of {', '.join(MODEL_TYPES)})"
        ) from None


def create_model(model_type: str, **hyperparameters: Any) -> TextModel:
    """
    Construct an untrained model.

    Args:
        model_type: 'markov', 'hmm' or 'vlmm'
        **hyperparameters: Constructor arguments (order, num_states, ...)
    """
    return get_model_class(model_type)(**hyperparameters)
