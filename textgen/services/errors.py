"""
Error kinds raised by the text generation core.
All are local conditions the caller can recover from.
"""


class TextGenError(Exception):
    """Base class for all text generation errors."""


class InvalidInputError(TextGenError, ValueError):
    """Bad tokenizer arguments, hyperparameters or request fields."""


class InsufficientDataError(TextGenError, ValueError):
    """Training corpus is too short for the requested model structure."""


class UntrainedModelError(TextGenError, RuntimeError):
    """Generation or decoding requested before training or loading."""


class NoValidStartStateError(TextGenError, RuntimeError):
    """The chain holds no state to start generating from."""


class InvalidModelDataError(TextGenError, ValueError):
    """Serialized model state is malformed."""


class ModelNotFoundError(TextGenError, FileNotFoundError):
    """A persisted model file does not exist."""


class CorpusNotFoundError(TextGenError, FileNotFoundError):
    """A corpus text file does not exist."""
