"""
Text generation services package.
Provides tokenization, the model contract, three model variants
(markov, hmm, vlmm), persistence and the train/generate entrypoints.
"""

from .errors import (
    TextGenError,
    InvalidInputError,
    InsufficientDataError,
    UntrainedModelError,
    NoValidStartStateError,
    InvalidModelDataError,
    ModelNotFoundError,
    CorpusNotFoundError,
)
from .tokenizer import Tokenizer, TokenStats, get_token_stats, get_tokenizer, post_process
from .interfaces import GenerationContext, GenerationResult, ModelCapabilities, TextModel
from .markov import MarkovModel, Transition
from .hmm import HiddenMarkovModel
from .vlmm import VLMModel, VLMMNode
from .registry import MODEL_TYPES, create_model, get_model_class
from .serializer import ModelSerializer, get_serializer, model_from_dict, validate_model_data
from .corpus import read_corpus
from .pipeline import (
    GenerateRequest,
    TrainRequest,
    generate_from_saved,
    generate_text,
    train_and_save,
    train_model,
)

__all__ = [
    "TextGenError",
    "InvalidInputError",
    "InsufficientDataError",
    "UntrainedModelError",
    "NoValidStartStateError",
    "InvalidModelDataError",
    "ModelNotFoundError",
    "CorpusNotFoundError",
    "Tokenizer",
    "TokenStats",
    "get_token_stats",
    "get_tokenizer",
    "post_process",
    "GenerationContext",
    "GenerationResult",
    "ModelCapabilities",
    "TextModel",
    "MarkovModel",
    "Transition",
    "HiddenMarkovModel",
    "VLMModel",
    "VLMMNode",
    "MODEL_TYPES",
    "create_model",
    "get_model_class",
    "ModelSerializer",
    "get_serializer",
    "model_from_dict",
    "validate_model_data",
    "read_corpus",
    "GenerateRequest",
    "TrainRequest",
    "generate_from_saved",
    "generate_text",
    "train_and_save",
    "train_model",
]
