"""
textgen - statistical text generation core.

Tokenize raw text, train Markov / variable-length Markov / hidden Markov
models over token sequences, persist them as JSON and sample new text.
"""

__version__ = "2.0.0"
