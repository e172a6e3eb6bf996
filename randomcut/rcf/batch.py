"""
This module contains the BatchRandomCutForest detector: it trains a random
cut forest on one batch of rows and scores a batch of rows against it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt

from ..artifact import ArtifactKind, ModelArtifact, resolve_model
from ..exceptions import InvalidArgumentError
from ..frame import ColumnMeta, ColumnType, PredictionFrame, as_points
from ..logger import get_logger
from ..params import BatchRCFParams, TrainingDataPolicy
from .forest import RandomCutForest

logger = get_logger(__name__)

NO_MODEL_MESSAGE = "No model found for batch RCF prediction"

OUTPUT_COLUMNS = (
    ColumnMeta("score", ColumnType.DOUBLE),
    ColumnMeta("anomalous", ColumnType.BOOLEAN),
)


class DetectorState(str, Enum):
    UNTRAINED = "UNTRAINED"
    TRAINED = "TRAINED"
    SCORED = "SCORED"


class BatchRandomCutForest:
    """
    Batch anomaly detector over a random cut forest.

    Attributes:
        parameters: Validated BatchRCFParams; defaults when built with None.
        state: UNTRAINED until the first train, TRAINED after it, SCORED once
            a prediction has been made. An untrained detector handed a
            model by ``predict`` adopts it and becomes TRAINED first.
    """

    def __init__(self, parameters: BatchRCFParams | None = None) -> None:
        self.parameters = parameters if parameters is not None else BatchRCFParams()
        self.state = DetectorState.UNTRAINED

    def _training_points(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        training_data_size = self.parameters.training_data_size
        n_rows = Xs.shape[0]
        if not training_data_size or training_data_size == n_rows:
            return Xs

        if self.parameters.training_data_policy == TrainingDataPolicy.STRICT:
            raise InvalidArgumentError(
                f"training data size {training_data_size} does not match the {n_rows} rows provided"
            )

        if training_data_size > n_rows:
            logger.warning(
                "Training data size %d exceeds the %d rows provided, training on all rows",
                training_data_size, n_rows,
            )
            return Xs

        logger.warning("Training on the first %d of %d rows", training_data_size, n_rows)
        return Xs[:training_data_size]

    def train(self, rows: Any) -> ModelArtifact:
        """
        Build a random cut forest over the rows.
        Args:
            rows: Training rows, anything accepted by ``as_points``.
        Returns:
            BATCH_RCF ModelArtifact wrapping the forest.
        """
        Xs = as_points(rows)
        if Xs.shape[0] == 0:
            raise InvalidArgumentError("no rows to train on")
        Xs = self._training_points(Xs)

        forest = RandomCutForest(
            number_of_trees=self.parameters.number_of_trees,
            sample_size=self.parameters.sample_size,
            max_depth=self.parameters.max_depth,
            n_jobs=self.parameters.n_jobs,
            random_state=self.parameters.random_state,
        ).build(Xs)

        self.state = DetectorState.TRAINED
        return ModelArtifact.for_forest(forest)

    def predict(self, rows: Any, model: ModelArtifact | Any) -> PredictionFrame:
        """
        Score every row against the model. Rows before ``output_after`` are
        reported with score 0 and never flagged.
        Args:
            rows: Rows to score, anything accepted by ``as_points``.
            model: BATCH_RCF ModelArtifact or its ModelRecord.
        Returns:
            PredictionFrame with ``score`` and ``anomalous`` columns, one row
            per input row in input order.
        """
        artifact = resolve_model(model, ArtifactKind.BATCH_RCF)
        if artifact is None:
            raise InvalidArgumentError(NO_MODEL_MESSAGE)
        if self.state == DetectorState.UNTRAINED:
            self.state = DetectorState.TRAINED

        Xs = as_points(rows)
        forest: RandomCutForest = artifact.payload
        if Xs.shape[0] and Xs.shape[1] != forest.n_features:
            raise InvalidArgumentError(
                f"expected points with {forest.n_features} features, got {Xs.shape[1]}"
            )

        scores = np.zeros(Xs.shape[0], dtype=np.float64)
        warm_up = min(self.parameters.output_after, Xs.shape[0])
        if warm_up < Xs.shape[0]:
            scores[warm_up:] = forest.score(Xs[warm_up:])

        anomalous = scores > self.parameters.anomaly_score_threshold
        anomalous[:warm_up] = False

        self.state = DetectorState.SCORED
        logger.info(
            "Scored %d rows (%d in warm-up), %d anomalous",
            Xs.shape[0], warm_up, int(np.sum(anomalous)),
        )
        return PredictionFrame.from_columns(OUTPUT_COLUMNS, scores, anomalous)

    def train_and_predict(self, rows: Any) -> PredictionFrame:
        """Train on the rows and score the very same rows."""
        return self.predict(rows, self.train(rows))
