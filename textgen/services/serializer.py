"""
Serialization boundary: validates persisted model data, dispatches it to the
right model class, and saves/loads models as JSON files.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from textgen.config import settings
from textgen.utils.logger import setup_logger
from .errors import InvalidInputError, InvalidModelDataError, ModelNotFoundError
from .interfaces import TextModel
from .registry import MODEL_TYPES

logger = setup_logger(__name__)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_model_data(data: Any) -> str:
    """
    Check the structural minimum before any model is constructed.

    Args:
        data: Parsed model data

    Returns:
        The model type tag
    """
    if not isinstance(data, dict):
        raise InvalidModelDataError("Invalid model data: not an object")

    model_type = data.get("modelType")
    if model_type not in MODEL_TYPES:
        raise InvalidModelDataError(f"Unsupported model type: {model_type!r}")

    if model_type == "hmm":
        if not _is_positive_int(data.get("numStates")):
            raise InvalidModelDataError("Invalid model data: missing or invalid numStates")
        if not isinstance(data.get("indexToToken"), list):
            raise InvalidModelDataError("Invalid model data: missing or invalid vocabulary")
        if data.get("emissions") is not None and not data["indexToToken"]:
            raise InvalidModelDataError("Invalid model data: trained HMM has an empty vocabulary")
    else:
        if not _is_positive_int(data.get("order")):
            raise InvalidModelDataError("Invalid model data: missing or invalid order")
        if not isinstance(data.get("vocabulary"), list):
            raise InvalidModelDataError("Invalid model data: missing or invalid vocabulary")

    return model_type


def model_from_dict(data: Dict[str, Any]) -> TextModel:
    """Validate persisted data and rebuild the matching model."""
    model_type = validate_model_data(data)
    return MODEL_TYPES[model_type].from_dict(data)


class ModelSerializer:
    """
    Saves and loads models as JSON files in a model directory.
    """

    def __init__(
        self,
        model_dir: Optional[Union[str, Path]] = None,
        include_metadata: Optional[bool] = None,
    ):
        """
        Args:
            model_dir: Directory for model files (defaults to settings.MODEL_DIR)
            include_metadata: Write a metadata block (defaults to settings.INCLUDE_METADATA)
        """
        self.model_dir = Path(model_dir or settings.MODEL_DIR)
        self.include_metadata = (
            settings.INCLUDE_METADATA if include_metadata is None else include_metadata
        )

    def resolve_path(self, name: str) -> Path:
        """Map a model name to a path inside the model directory."""
        if not name or not isinstance(name, str):
            raise InvalidInputError("Model name must be a non-empty string")
        if ".." in Path(name).parts:
            raise InvalidInputError(f"Invalid model name: {name}")

        path = Path(name)
        if path.suffix != ".json":
            path = path.with_name(path.name + ".json")
        return path if path.is_absolute() else self.model_dir / path

    def save_model(self, model: TextModel, name: str) -> Path:
        """
        Write a model to <model_dir>/<name>.json.

        Returns:
            Path of the written file
        """
        path = self.resolve_path(name)
        data = model.to_dict()
        if self.include_metadata:
            data["metadata"] = {
                "created": datetime.now(timezone.utc).isoformat(),
                "service": settings.SERVICE_NAME,
                "version": settings.SERVICE_VERSION,
                "stats": model.get_stats(),
            }

        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f)

        logger.info(f"[SERIALIZER] Saved {model.model_type} model to {path}")
        return path

    def load_model(self, name: str) -> TextModel:
        """Load and validate a model file."""
        path = self.resolve_path(name)
        if not path.is_file():
            raise ModelNotFoundError(f"Model file not found: {path}")

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidModelDataError(f"Invalid JSON in model file {path.name}: {e}") from e

        model = model_from_dict(data)

        created = (data.get("metadata") or {}).get("created")
        logger.info(
            f"[SERIALIZER] Loaded {model.model_type} model from {path}"
            + (f" (created {created})" if created else "")
        )
        return model

    def list_models(self) -> List[Dict[str, Any]]:
        """
        Describe every model file in the model directory.

        Unreadable files are listed with an error entry instead of aborting.
        """
        if not self.model_dir.exists():
            return []

        models = []
        for path in sorted(self.model_dir.glob("*.json")):
            entry: Dict[str, Any] = {"filename": path.name, "size": path.stat().st_size}
            try:
                with path.open("r", encoding="utf-8") as f:
                    data = json.load(f)
                entry.update({
                    "model_type": data.get("modelType"),
                    "order": data.get("order"),
                    "num_states": data.get("numStates"),
                    "vocabulary_size": len(data.get("vocabulary") or data.get("indexToToken") or []),
                })
            except (OSError, json.JSONDecodeError, AttributeError) as e:
                logger.warning(f"[SERIALIZER] Could not read {path.name}: {e}")
                entry["error"] = str(e)
            models.append(entry)
        return models

    def delete_model(self, name: str) -> Path:
        path = self.resolve_path(name)
        if not path.is_file():
            raise ModelNotFoundError(f"Model file not found: {path}")
        path.unlink()
        logger.info(f"[SERIALIZER] Deleted model {path}")
        return path


# Singleton serializer
_SERIALIZER: Optional[ModelSerializer] = None


def get_serializer() -> ModelSerializer:
    """Get or create the default serializer."""
    global _SERIALIZER
    if _SERIALIZER is None:
        _SERIALIZER = ModelSerializer()
    return _SERIALIZER
