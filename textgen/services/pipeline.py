"""
Training and generation entrypoints.

Request schemas are pydantic models so the surrounding command layer can pass
plain dicts; validation failures surface as InvalidInputError.
"""
from __future__ import annotations

import random
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from textgen.config import SENTENCE_ENDINGS, settings
from textgen.utils.logger import setup_logger
from .corpus import read_corpus
from .errors import InvalidInputError
from .hmm import HiddenMarkovModel
from .interfaces import GenerationContext, GenerationResult, TextModel
from .markov import MarkovModel
from .sampling import RandomFn
from .serializer import ModelSerializer, get_serializer
from .tokenizer import get_tokenizer
from .vlmm import VLMModel

logger = setup_logger(__name__)

R = TypeVar("R", bound=BaseModel)


class TrainRequest(BaseModel):
    """Training options; exactly one of text, tokens or file is required."""
    model_type: Literal["markov", "hmm", "vlmm"] = Field(
        default_factory=lambda: settings.DEFAULT_MODEL_TYPE
    )
    text: Optional[str] = None
    tokens: Optional[List[Union[str, List[str]]]] = None
    file: Optional[str] = None
    corpus_dir: Optional[str] = None

    order: Optional[int] = Field(default=None, ge=1)
    num_states: Optional[int] = Field(default=None, ge=1)
    max_iterations: Optional[int] = Field(default=None, ge=1)
    tolerance: Optional[float] = Field(default=None, ge=0)

    case_sensitive: bool = False
    per_sentence: bool = False
    seed: Optional[int] = None
    verbose: bool = False

    @field_validator("order")
    @classmethod
    def check_order(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v > settings.MAX_ORDER:
            raise ValueError(f"order must be <= {settings.MAX_ORDER}")
        return v

    @model_validator(mode="after")
    def check_single_source(self) -> "TrainRequest":
        sources = [s for s in (self.text, self.tokens, self.file) if s is not None]
        if len(sources) != 1:
            raise ValueError("exactly one of text, tokens or file is required")
        return self


class GenerateRequest(BaseModel):
    """Generation options; samples > 1 runs a batch."""
    max_tokens: int = Field(default_factory=lambda: settings.DEFAULT_MAX_TOKENS, ge=1)
    min_tokens: int = Field(default_factory=lambda: settings.DEFAULT_MIN_TOKENS, ge=0)
    stop: List[str] = Field(default_factory=lambda: list(SENTENCE_ENDINGS))
    prompt: Optional[str] = None
    temperature: float = Field(default_factory=lambda: settings.DEFAULT_TEMPERATURE, ge=0)
    allow_repetition: bool = True
    samples: int = Field(default=1, ge=1)
    seed: Optional[int] = None

    @field_validator("samples")
    @classmethod
    def check_batch_size(cls, v: int) -> int:
        if v > settings.MAX_BATCH_SIZE:
            raise ValueError(f"samples must be <= {settings.MAX_BATCH_SIZE}")
        return v

    def to_context(self, random_fn: Optional[RandomFn] = None) -> GenerationContext:
        if random_fn is None:
            random_fn = random.Random(self.seed).random if self.seed is not None else random.random
        return GenerationContext(
            max_tokens=self.max_tokens,
            min_tokens=self.min_tokens,
            stop=tuple(self.stop),
            prompt=self.prompt,
            temperature=self.temperature,
            random_fn=random_fn,
            allow_repetition=self.allow_repetition,
        )


def _coerce(schema: Type[R], request: Union[R, Dict[str, Any], None], overrides: Dict[str, Any]) -> R:
    if isinstance(request, schema):
        data = request.model_dump(exclude_unset=True)
    elif request is None:
        data = {}
    elif isinstance(request, dict):
        data = dict(request)
    else:
        raise InvalidInputError(f"Expected {schema.__name__} or dict, got {type(request).__name__}")

    try:
        return schema.model_validate({**data, **overrides})
    except ValidationError as e:
        raise InvalidInputError(str(e)) from e


def _load_tokens(req: TrainRequest) -> List[Any]:
    if req.tokens is not None:
        return req.tokens

    text = req.text if req.text is not None else read_corpus(req.file, req.corpus_dir)
    tokenizer = get_tokenizer()
    if req.per_sentence:
        return tokenizer.tokenize_into_sentences(
            text, preserve_punctuation=True, preserve_case=req.case_sensitive,
        )
    return tokenizer.tokenize(
        text, method="word", preserve_punctuation=True, preserve_case=req.case_sensitive,
    )


def train_model(request: Union[TrainRequest, Dict[str, Any], None] = None, **kwargs: Any) -> TextModel:
    """
    Train a model of the requested type from text, tokens or a corpus file.

    Args:
        request: TrainRequest or equivalent dict
        **kwargs: Field overrides

    Returns:
        Trained model, ready for to_dict()/save_model()
    """
    req = _coerce(TrainRequest, request, kwargs)
    tokens = _load_tokens(req)

    if req.model_type == "markov":
        model: TextModel = MarkovModel(order=req.order or settings.DEFAULT_ORDER)
        model.train(tokens, case_sensitive=req.case_sensitive)
    elif req.model_type == "vlmm":
        model = VLMModel(order=req.order or settings.DEFAULT_VLMM_ORDER)
        model.train(tokens, case_sensitive=req.case_sensitive)
    else:
        model = HiddenMarkovModel(
            num_states=req.num_states or settings.HMM_NUM_STATES,
            max_iterations=req.max_iterations or settings.HMM_MAX_ITERATIONS,
            tolerance=req.tolerance if req.tolerance is not None else settings.HMM_TOLERANCE,
            random_fn=random.Random(req.seed).random if req.seed is not None else None,
        )
        model.train(tokens, verbose=req.verbose)

    logger.info(f"[TRAIN] Trained {req.model_type} model: {model.get_stats()}")
    return model


def generate_text(
    model: TextModel,
    request: Union[GenerateRequest, Dict[str, Any], None] = None,
    random_fn: Optional[RandomFn] = None,
    **kwargs: Any,
) -> List[GenerationResult]:
    """
    Generate one or more samples from a trained (or loaded) model.

    Args:
        model: Trained model
        request: GenerateRequest or equivalent dict
        random_fn: Explicit random source (overrides request.seed)
        **kwargs: Field overrides

    Returns:
        List of GenerationResult (one per sample; failed batch samples carry error)
    """
    if not isinstance(model, TextModel):
        raise InvalidInputError("model must be a TextModel")

    req = _coerce(GenerateRequest, request, kwargs)
    context = req.to_context(random_fn)

    if req.samples == 1:
        return [model.generate(context)]
    return model.generate_samples(req.samples, context)


def train_and_save(
    request: Union[TrainRequest, Dict[str, Any], None] = None,
    model_name: Optional[str] = None,
    serializer: Optional[ModelSerializer] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Train a model and persist it.

    The model name defaults to the corpus file stem, else '<model_type>-model'.

    Returns:
        Summary dict with model_name, path, model_type, vocabulary_size, stats
    """
    req = _coerce(TrainRequest, request, kwargs)
    model = train_model(req)
    serializer = serializer or get_serializer()

    name = model_name or (Path(req.file).stem if req.file else f"{req.model_type}-model")
    path = serializer.save_model(model, name)
    stats = model.get_stats()

    return {
        "model_name": path.name,
        "path": str(path),
        "model_type": model.model_type,
        "vocabulary_size": stats["vocabulary_size"],
        "stats": stats,
    }


def generate_from_saved(
    model_name: str,
    request: Union[GenerateRequest, Dict[str, Any], None] = None,
    serializer: Optional[ModelSerializer] = None,
    random_fn: Optional[RandomFn] = None,
    **kwargs: Any,
) -> List[GenerationResult]:
    """Load a persisted model by name and generate from it."""
    model = (serializer or get_serializer()).load_model(model_name)
    return generate_text(model, request, random_fn=random_fn, **kwargs)
