"""
Hidden Markov Model for text generation.

Latent states are anonymous indices discovered by Baum-Welch (EM) training;
each state emits tokens from its own distribution. Parameters live in dense
numpy arrays:
- initial[i]        P(state_i at t=0)
- transitions[i, j] P(state_j | state_i)
- emissions[i, v]   P(token_v | state_i)

Forward-backward is scaled per time step so long sequences do not underflow.
Viterbi decoding is exposed for inspecting the learned structure.
"""
from __future__ import annotations

import math
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

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
from .sampling import RandomFn, sample_index

logger = setup_logger(__name__)


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Make each row sum to 1; zero-sum rows become uniform."""
    matrix = np.asarray(matrix, dtype=float)
    sums = matrix.sum(axis=1, keepdims=True)
    uniform = np.full_like(matrix, 1.0 / matrix.shape[1])
    return np.where(sums > 0, matrix / np.where(sums > 0, sums, 1.0), uniform)


def normalize_vector(vector: np.ndarray) -> np.ndarray:
    """Make a vector sum to 1; a zero-sum vector becomes uniform."""
    vector = np.asarray(vector, dtype=float)
    total = vector.sum()
    if total > 0:
        return vector / total
    return np.full_like(vector, 1.0 / vector.shape[0])


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class HiddenMarkovModel(TextModel):
    """
    HMM trained without labels via Baum-Welch.

    Usage:
        hmm = HiddenMarkovModel(num_states=5, max_iterations=50)
        hmm.train(tokens, random_fn=random.Random(7).random)
        result = hmm.generate(GenerationContext(max_tokens=20))
        path = hmm.viterbi(["the", "cat", "sat"])
    """

    model_type = "hmm"

    def __init__(
        self,
        num_states: int = 10,
        max_iterations: int = 100,
        tolerance: float = 1e-6,
        random_fn: Optional[RandomFn] = None,
    ):
        """
        Initialize an untrained HMM.

        Args:
            num_states: Number of latent states
            max_iterations: EM iteration cap
            tolerance: Stop when |LL_t - LL_{t-1}| < tolerance
            random_fn: Default random source for initialization
        """
        if not _is_positive_int(num_states):
            raise InvalidInputError("num_states must be a positive integer")
        if not _is_positive_int(max_iterations):
            raise InvalidInputError("max_iterations must be a positive integer")
        if tolerance is None or tolerance < 0:
            raise InvalidInputError("tolerance must be >= 0")

        self.num_states = num_states
        self.max_iterations = max_iterations
        self.tolerance = float(tolerance)
        self.random_fn = random_fn or random.random

        self.initial: Optional[np.ndarray] = None
        self.transitions: Optional[np.ndarray] = None
        self.emissions: Optional[np.ndarray] = None

        # Vocabulary and state mappings
        self.token_to_index: Dict[str, int] = {}
        self.index_to_token: List[str] = []
        self.state_to_index: Dict[str, int] = {}
        self.index_to_state: List[str] = []

        # Training diagnostics
        self.log_likelihoods: List[float] = []
        self.iterations = 0
        self.converged = False

    def get_capabilities(self) -> ModelCapabilities:
        return ModelCapabilities(
            supports_temperature=False,
            supports_constraints=True,
            supports_conditional_generation=True,
            supports_batch_generation=True,
            max_order=1,
            model_type=self.model_type,
            supports_unsupervised_learning=True,
        )

    @property
    def is_trained(self) -> bool:
        return self.transitions is not None and self.emissions is not None and self.initial is not None

    # --- parameters ---
    def _build_mappings(self, vocabulary: List[str], states: Optional[List[str]] = None):
        self.index_to_token = list(vocabulary)
        self.token_to_index = {token: i for i, token in enumerate(self.index_to_token)}
        self.index_to_state = list(states) if states else [f"state_{i}" for i in range(self.num_states)]
        self.state_to_index = {state: i for i, state in enumerate(self.index_to_state)}

    def initialize_parameters(self, vocabulary: List[str], random_fn: Optional[RandomFn] = None):
        """
        Build index maps and draw random row-stochastic parameters.

        Args:
            vocabulary: Distinct tokens in index order
            random_fn: Uniform [0, 1) source (defaults to the model's)
        """
        random_fn = random_fn or self.random_fn
        n, v = self.num_states, len(vocabulary)
        self._build_mappings(vocabulary)

        self.transitions = normalize_rows(
            np.array([[random_fn() for _ in range(n)] for _ in range(n)], dtype=float)
        )
        self.emissions = normalize_rows(
            np.array([[random_fn() for _ in range(v)] for _ in range(n)], dtype=float)
        )
        self.initial = normalize_vector(np.array([random_fn() for _ in range(n)], dtype=float))

    def _encode(self, tokens: Sequence[str]) -> np.ndarray:
        try:
            return np.array([self.token_to_index[t] for t in tokens], dtype=int)
        except KeyError as e:
            raise InvalidInputError(f"Token not in vocabulary: {e.args[0]!r}") from e

    # --- training ---
    def train(
        self,
        tokens: Sequence,
        vocabulary: Optional[List[str]] = None,
        verbose: bool = False,
        random_fn: Optional[RandomFn] = None,
    ) -> None:
        """
        Fit parameters with Baum-Welch, starting from a fresh random initialization.

        A list of token lists is trained jointly: expected counts from every
        sequence are pooled in each EM iteration.

        Args:
            tokens: Token list, or list of token lists
            vocabulary: Optional fixed vocabulary (first-occurrence order otherwise)
            verbose: Log every iteration at INFO instead of DEBUG
            random_fn: Random source for initialization
        """
        sequences = [seq for seq in split_sequences(tokens) if seq]
        if not sequences:
            raise InsufficientDataError("Training tokens must be a non-empty list")

        if vocabulary is None:
            vocabulary = list(dict.fromkeys(t for seq in sequences for t in seq))
        elif not vocabulary:
            raise InvalidInputError("vocabulary must not be empty")
        else:
            known = set(vocabulary)
            missing = next((t for seq in sequences for t in seq if t not in known), None)
            if missing is not None:
                raise InvalidInputError(f"Token not in vocabulary: {missing!r}")

        self.initialize_parameters(list(vocabulary), random_fn)
        encoded = [self._encode(seq) for seq in sequences]

        self.log_likelihoods = []
        self.iterations = 0
        self.converged = False
        prev_log_likelihood = -math.inf

        for iteration in range(self.max_iterations):
            log_likelihood, counts = self._expectation(encoded)
            self.log_likelihoods.append(log_likelihood)

            converged = abs(log_likelihood - prev_log_likelihood) < self.tolerance
            prev_log_likelihood = log_likelihood

            self._maximization(counts, len(encoded))
            self.iterations = iteration + 1

            msg = f"[HMM] Iteration {self.iterations}: log-likelihood = {log_likelihood:.4f}"
            if verbose:
                logger.info(msg)
            else:
                logger.debug(msg)

            if converged:
                self.converged = True
                break

        logger.info(
            f"[HMM] Trained {self.num_states} states over {len(self.index_to_token)} tokens: "
            f"{self.iterations} iterations, converged={self.converged}"
        )

    def forward_backward(self, tokens: Sequence[str]) -> Tuple[np.ndarray, np.ndarray, np.ndarray, float]:
        """
        Scaled forward-backward pass over a token sequence.

        Returns:
            Tuple of (alpha, beta, scale_factors, log_likelihood)
        """
        if not self.is_trained:
            raise UntrainedModelError("Model has not been trained")
        if not tokens:
            raise InvalidInputError("Token sequence must not be empty")
        return self._forward_backward(self._encode(tokens))

    def _forward_backward(self, obs: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, float]:
        T, N = len(obs), self.num_states

        alpha = np.zeros((T, N))
        scale = np.ones(T)

        alpha[0] = self.initial * self.emissions[:, obs[0]]
        for t in range(T):
            if t > 0:
                alpha[t] = (alpha[t - 1] @ self.transitions) * self.emissions[:, obs[t]]
            total = alpha[t].sum()
            # A zero row keeps scale 1 to avoid dividing by zero
            if total > 0:
                scale[t] = total
                alpha[t] /= total

        beta = np.zeros((T, N))
        beta[T - 1] = 1.0
        for t in range(T - 2, -1, -1):
            beta[t] = self.transitions @ (self.emissions[:, obs[t + 1]] * beta[t + 1]) / scale[t + 1]

        log_likelihood = float(np.log(scale).sum())
        return alpha, beta, scale, log_likelihood

    def _expectation(self, encoded: List[np.ndarray]) -> Tuple[float, Dict[str, np.ndarray]]:
        """E-step: pooled expected counts over all sequences."""
        N, V = self.num_states, len(self.index_to_token)
        counts = {
            "initial": np.zeros(N),
            "trans_num": np.zeros((N, N)),
            "trans_den": np.zeros(N),
            "emit_num": np.zeros((V, N)),
            "emit_den": np.zeros(N),
        }
        total_log_likelihood = 0.0

        for obs in encoded:
            alpha, beta, _, log_likelihood = self._forward_backward(obs)
            total_log_likelihood += log_likelihood

            # gamma[t, i]: posterior state occupancy
            gamma = alpha * beta
            sums = gamma.sum(axis=1, keepdims=True)
            gamma = np.divide(gamma, sums, out=np.zeros_like(gamma), where=sums > 0)

            # xi[t, i, j] normalized per time step, accumulated over t
            if len(obs) > 1:
                weighted_next = self.emissions[:, obs[1:]].T * beta[1:]
                xi_totals = np.einsum("ti,ij,tj->t", alpha[:-1], self.transitions, weighted_next)
                inv = np.divide(1.0, xi_totals, out=np.zeros_like(xi_totals), where=xi_totals > 0)
                counts["trans_num"] += self.transitions * ((alpha[:-1] * inv[:, None]).T @ weighted_next)
                counts["trans_den"] += gamma[:-1].sum(axis=0)

            counts["initial"] += gamma[0]
            np.add.at(counts["emit_num"], obs, gamma)
            counts["emit_den"] += gamma.sum(axis=0)

        return total_log_likelihood, counts

    def _maximization(self, counts: Dict[str, np.ndarray], num_sequences: int):
        """M-step: re-estimate parameters, uniform rows where there is no mass."""
        N, V = self.num_states, len(self.index_to_token)

        self.initial = normalize_vector(counts["initial"] / num_sequences)

        trans_den = counts["trans_den"][:, None]
        self.transitions = normalize_rows(np.where(
            trans_den > 0,
            counts["trans_num"] / np.where(trans_den > 0, trans_den, 1.0),
            1.0 / N,
        ))

        emit_den = counts["emit_den"][:, None]
        self.emissions = normalize_rows(np.where(
            emit_den > 0,
            counts["emit_num"].T / np.where(emit_den > 0, emit_den, 1.0),
            1.0 / V,
        ))

    # --- generation / decoding ---
    def generate(self, context: Optional[GenerationContext] = None) -> GenerationResult:
        """
        Sample a state path and its emissions. Temperature and prompt are ignored.

        Args:
            context: Generation parameters

        Returns:
            GenerationResult
        """
        context = context or GenerationContext()
        if not self.is_trained:
            raise UntrainedModelError("Model has not been trained")

        random_fn = context.random_fn
        generated: List[str] = []
        finish_reason = "length"
        state = sample_index(self.initial, random_fn)

        for _ in range(context.max_tokens):
            token = self.index_to_token[sample_index(self.emissions[state], random_fn)]
            generated.append(token)

            if len(generated) >= context.min_tokens and token in context.stop:
                finish_reason = "stop"
                break

            state = sample_index(self.transitions[state], random_fn)

        return GenerationResult(
            text=self.post_process(generated),
            tokens=generated,
            length=len(generated),
            model=self.model_type,
            finish_reason=finish_reason,
        )

    def viterbi(self, tokens: Sequence[str]) -> List[str]:
        """
        Most probable latent state path for an observed token sequence.

        Computed in log space; the argmax matches the product recursion
        viterbi[t][j] = max_i(viterbi[t-1][i] * A[i][j]) * B[j][token_t].

        Args:
            tokens: Observed tokens (all must be in the vocabulary)

        Returns:
            State labels, one per input token
        """
        if not self.is_trained:
            raise UntrainedModelError("Model has not been trained")
        if not tokens:
            raise InvalidInputError("Token sequence must not be empty")

        obs = self._encode(tokens)
        T, N = len(obs), self.num_states

        with np.errstate(divide="ignore"):
            log_initial = np.log(self.initial)
            log_transitions = np.log(self.transitions)
            log_emissions = np.log(self.emissions)

        backpointer = np.zeros((T, N), dtype=int)
        scores = log_initial + log_emissions[:, obs[0]]

        for t in range(1, T):
            candidates = scores[:, None] + log_transitions
            backpointer[t] = candidates.argmax(axis=0)
            scores = candidates[backpointer[t], np.arange(N)] + log_emissions[:, obs[t]]

        path = [int(scores.argmax())]
        for t in range(T - 1, 0, -1):
            path.append(int(backpointer[t][path[-1]]))
        path.reverse()

        return [self.index_to_state[i] for i in path]

    # --- stats / persistence ---
    def get_stats(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type,
            "num_states": self.num_states,
            "vocabulary_size": len(self.index_to_token),
            "transitions": len(self.transitions) if self.transitions is not None else 0,
            "emissions": len(self.emissions) if self.emissions is not None else 0,
            "iterations": self.iterations,
            "converged": self.converged,
            "log_likelihood": self.log_likelihoods[-1] if self.log_likelihoods else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelType": self.model_type,
            "numStates": self.num_states,
            "maxIterations": self.max_iterations,
            "tolerance": self.tolerance,
            "initial": self.initial.tolist() if self.initial is not None else None,
            "transitions": self.transitions.tolist() if self.transitions is not None else None,
            "emissions": self.emissions.tolist() if self.emissions is not None else None,
            "indexToToken": list(self.index_to_token),
            "indexToState": list(self.index_to_state),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HiddenMarkovModel":
        """
        Rebuild from to_dict() output; index maps are rebuilt from the lists.

        Null matrices load as an untrained model; anything partial or
        wrongly shaped raises InvalidModelDataError.
        """
        if not isinstance(data, dict):
            raise InvalidModelDataError("Invalid model data: must be an object.")

        num_states = data.get("numStates")
        if not _is_positive_int(num_states):
            raise InvalidModelDataError("Invalid model data: numStates must be a positive integer.")

        vocabulary = data.get("indexToToken")
        if not isinstance(vocabulary, list):
            raise InvalidModelDataError("Invalid model data: missing or invalid indexToToken.")

        states = data.get("indexToState") or None
        if states is not None and (not isinstance(states, list) or len(states) != num_states):
            raise InvalidModelDataError("Invalid model data: indexToState must list numStates labels.")

        try:
            model = cls(
                num_states=num_states,
                max_iterations=data.get("maxIterations") or 100,
                tolerance=data.get("tolerance", 1e-6),
            )
        except InvalidInputError as e:
            raise InvalidModelDataError(f"Invalid model data: {e}") from e
        model._build_mappings(vocabulary, states)

        raw = [data.get("initial"), data.get("transitions"), data.get("emissions")]
        if all(m is None for m in raw):
            return model
        if any(m is None for m in raw):
            raise InvalidModelDataError("Invalid model data: initial, transitions and emissions must all be present.")
        if not vocabulary:
            raise InvalidModelDataError("Invalid model data: a trained model needs a non-empty indexToToken.")

        expected = [(num_states,), (num_states, num_states), (num_states, len(vocabulary))]
        matrices = []
        for name, matrix, shape in zip(("initial", "transitions", "emissions"), raw, expected):
            try:
                array = np.array(matrix, dtype=float)
            except (TypeError, ValueError) as e:
                raise InvalidModelDataError(f"Invalid model data: malformed {name}") from e
            if array.shape != shape:
                raise InvalidModelDataError(
                    f"Invalid model data: {name} has shape {array.shape}, expected {shape}"
                )
            matrices.append(array)

        model.initial, model.transitions, model.emissions = matrices
        return model
