"""FaceNet wrapper producing fixed-length face descriptors."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

import numpy as np
import tensorflow as tf

logger = logging.getLogger(__name__)

FACENET_INPUT_SIZE = (160, 160)


class FaceNetEmbeddingService:
    """Loads the FaceNet SavedModel once and turns face crops into L2-normalised descriptors."""

    def __init__(
        self,
        backbone_dir: Path,
        embedding_dim: int,
        batch_size: int = 32,
    ) -> None:
        if not backbone_dir.exists():
            raise FileNotFoundError(f"FaceNet backbone directory not found: {backbone_dir}")
        logger.info("Loading FaceNet weights from %s", backbone_dir)
        self._batch_size = batch_size
        self._backbone = tf.saved_model.load(str(backbone_dir))
        self._infer = self._backbone.signatures["serving_default"]
        self._embedding_key = self._resolve_embedding_key()
        self.embedding_dim = embedding_dim
        logger.info("FaceNet ready (output '%s', dim %d)", self._embedding_key, embedding_dim)

    def _resolve_embedding_key(self) -> str:
        preferred_keys = ("Bottleneck_BatchNorm", "embeddings")
        for key in preferred_keys:
            if key in self._infer.structured_outputs:
                return key
        return next(iter(self._infer.structured_outputs))

    @staticmethod
    def _preprocess(images: tf.Tensor) -> tf.Tensor:
        resized = tf.image.resize(images, FACENET_INPUT_SIZE)
        return (resized * 2.0) - 1.0

    @staticmethod
    def _normalise(embeddings: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        norms = np.maximum(norms, 1e-12)
        return embeddings / norms

    def embed(self, face_crops: Sequence[np.ndarray]) -> List[np.ndarray]:
        """Return one descriptor per crop; crops are RGB float32 in [0, 1]."""
        if len(face_crops) == 0:
            return []
        stacked = np.stack([np.asarray(crop, dtype=np.float32) for crop in face_crops], axis=0)
        chunks = []
        for start in range(0, len(stacked), self._batch_size):
            batch = tf.convert_to_tensor(stacked[start:start + self._batch_size], dtype=tf.float32)
            outputs = self._infer(self._preprocess(batch))
            batch_embeddings = outputs.get(self._embedding_key, next(iter(outputs.values())))
            chunks.append(batch_embeddings.numpy())
        merged = self._normalise(np.vstack(chunks))
        if merged.shape[1] != self.embedding_dim:
            logger.warning("Model produced %d-d descriptors, expected %d", merged.shape[1], self.embedding_dim)
        return [row.astype(np.float32) for row in merged]
