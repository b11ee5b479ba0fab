"""
Text Generation Core Configuration
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ===== Service =====
    SERVICE_NAME: str = Field(default="textgen", env="SERVICE_NAME")  # type: ignore
    SERVICE_VERSION: str = Field(default="2.0.0", env="SERVICE_VERSION")  # type: ignore
    LOG_LEVEL: str = Field(default="info", env="LOG_LEVEL")  # type: ignore

    # ===== Storage =====
    MODEL_DIR: str = Field(default="./data/models", env="MODEL_DIR")  # type: ignore
    CORPUS_DIR: str = Field(default="./data/corpus", env="CORPUS_DIR")  # type: ignore
    INCLUDE_METADATA: bool = Field(default=True, env="INCLUDE_METADATA")  # type: ignore

    # ===== Training Defaults =====
    DEFAULT_MODEL_TYPE: str = Field(default="markov", env="DEFAULT_MODEL_TYPE")  # type: ignore
    DEFAULT_ORDER: int = Field(default=2, env="DEFAULT_ORDER")  # type: ignore
    DEFAULT_VLMM_ORDER: int = Field(default=5, env="DEFAULT_VLMM_ORDER")  # type: ignore
    MAX_ORDER: int = Field(default=10, env="MAX_ORDER")  # type: ignore

    # HMM / Baum-Welch
    HMM_NUM_STATES: int = Field(default=10, env="HMM_NUM_STATES")  # type: ignore
    HMM_MAX_ITERATIONS: int = Field(default=100, env="HMM_MAX_ITERATIONS")  # type: ignore
    HMM_TOLERANCE: float = Field(default=1e-6, env="HMM_TOLERANCE")  # type: ignore

    # ===== Generation Defaults =====
    DEFAULT_MAX_TOKENS: int = Field(default=100, env="DEFAULT_MAX_TOKENS")  # type: ignore
    DEFAULT_MIN_TOKENS: int = Field(default=50, env="DEFAULT_MIN_TOKENS")  # type: ignore
    DEFAULT_TEMPERATURE: float = Field(default=1.0, env="DEFAULT_TEMPERATURE")  # type: ignore
    MAX_BATCH_SIZE: int = Field(default=50, env="MAX_BATCH_SIZE")  # type: ignore

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()

# Default sentence terminators, shared by tokenizer, training and generation
SENTENCE_ENDINGS = (".", "!", "?")
