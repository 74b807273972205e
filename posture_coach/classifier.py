"""Activity classification from pose landmarks.

Loads a Teachable-Machine style export: ``model.json`` (TensorFlow.js
layers model) next to ``metadata.json`` (label list). The model is fed a
flat vector of normalized COCO-17 keypoints ``(x / width, y / height,
score)``; exports trained on a different input fail to load.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence

import numpy as np

from posture_coach.exceptions import InvalidPayloadError, ModelInitializationError
from posture_coach.models import Landmark, Prediction, find_landmark
from posture_coach.pose_analyzer import COCO17_NAMES

logger = logging.getLogger("PoseClassifier")

FEATURE_SIZE = len(COCO17_NAMES) * 3


def read_labels(metadata_location: str) -> List[str]:
    """Read the ordered class labels from ``metadata.json``."""
    try:
        metadata = json.loads(Path(metadata_location).read_text(encoding='utf-8'))
    except (OSError, ValueError) as e:
        raise ModelInitializationError(f'cannot read metadata {metadata_location}: {e}') from e

    labels = metadata.get('labels') if isinstance(metadata, dict) else None
    if not labels or not all(isinstance(label, str) for label in labels):
        raise ModelInitializationError(f'{metadata_location} has no "labels" list')
    return list(labels)


def landmark_features(landmarks: Sequence[Landmark], width: int, height: int) -> np.ndarray:
    """Flatten landmarks into the classifier input vector.

    Missing keypoints are zero-filled so the vector length never changes.
    """
    features = np.zeros(FEATURE_SIZE, dtype=np.float32)
    for i, name in enumerate(COCO17_NAMES):
        landmark = find_landmark(landmarks, name)
        if landmark is None:
            continue
        features[i * 3:(i + 1) * 3] = (
            landmark.x / float(width),
            landmark.y / float(height),
            landmark.confidence
        )
    return features


class PoseClassifier:
    """Scores activity labels for a frame's landmarks.

    Attributes:
        labels: Class labels in model output order
        model: Loaded Keras model
    """

    def __init__(self, model: Any, labels: Sequence[str]) -> None:
        self.model = model
        self.labels = list(labels)

    @classmethod
    def load(cls, model_location: str, metadata_location: str) -> 'PoseClassifier':
        """Load the model and its metadata.

        Raises:
            ModelInitializationError: Artifacts missing, unreadable or incompatible
        """
        labels = read_labels(metadata_location)
        if not Path(model_location).is_file():
            raise ModelInitializationError(f'model not found: {model_location}')

        try:
            from tensorflowjs.converters import load_keras_model
            model = load_keras_model(model_location)
        except Exception as e:
            raise ModelInitializationError(
                f"cannot load {model_location}; install with: pip install '.[classifier]'"
            ) from e

        input_size = model.input_shape[-1]
        if input_size != FEATURE_SIZE:
            raise ModelInitializationError(
                f'model expects {input_size} inputs, landmarks give {FEATURE_SIZE}'
            )
        output_size = model.output_shape[-1]
        if output_size != len(labels):
            raise ModelInitializationError(
                f'model has {output_size} outputs but metadata lists {len(labels)} labels'
            )

        logger.info("Loaded classifier %s with labels %s", model_location, labels)
        return cls(model, labels)

    def predict(self, landmarks: Sequence[Landmark], width: int, height: int) -> List[Prediction]:
        """Score every label for one frame; empty when there are no landmarks."""
        if not landmarks:
            return []
        features = landmark_features(landmarks, width, height)
        scores = np.asarray(self.model.predict(features[np.newaxis, :], verbose=0))[0]
        return [
            Prediction(label=label, probability=float(score))
            for label, score in zip(self.labels, scores)
        ]

    def close(self) -> None:
        """Drop the model reference."""
        self.model = None


def predictions_from_payload(items: Iterable[Mapping[str, Any]]) -> List[Prediction]:
    """Parse browser predictions (``{className|label, probability}``).

    Raises:
        InvalidPayloadError: An entry lacks a field or has a bad value
    """
    if isinstance(items, (str, bytes)) or not isinstance(items, Iterable):
        raise InvalidPayloadError('predictions must be a list of objects')

    predictions = []
    for i, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise InvalidPayloadError(f'prediction {i} is not an object')
        label = item.get('className', item.get('label'))
        if label is None:
            raise InvalidPayloadError(f'prediction {i} has no label')
        try:
            probability = float(item['probability'])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidPayloadError(f'prediction {i} has no valid probability') from e
        predictions.append(Prediction(label=str(label), probability=probability))
    return predictions
