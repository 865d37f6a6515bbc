import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import KSpec, validate_k_spec
from .errors import EmptyPredictorSetError, InvalidParameterError, InvalidTargetError
from .logging_utils import get_logger

_LOG = get_logger(__name__)


@dataclass(frozen=True)
class RegressionTask:
    """One per-gene regression: predict ``target_gene`` from ``predictor_genes``."""

    target_gene: str
    target_index: int
    predictor_genes: Tuple[str, ...]
    predictor_indices: Tuple[int, ...]
    n_samples: int
    mtry: int

    @property
    def n_predictors(self) -> int:
        return len(self.predictor_genes)


def resolve_mtry(k_spec: KSpec, n_predictors: int) -> int:
    k_spec = validate_k_spec(k_spec)
    if k_spec == "all":
        return n_predictors
    if k_spec == "sqrt":
        return max(1, int(round(math.sqrt(n_predictors))))
    return int(k_spec)


def build_task(
    expression: pd.DataFrame,
    target_gene: str,
    candidate_regulators: Sequence[str],
    k_spec: KSpec = "sqrt",
) -> RegressionTask:
    """Build the regression task for ``target_gene``.

    The target is always dropped from its own predictors, even when it is listed as
    a candidate regulator. Predictors keep the expression matrix row order.
    """

    if target_gene not in expression.index:
        raise InvalidTargetError(target_gene)

    predictors = set(candidate_regulators)
    unknown = sorted(str(gene) for gene in predictors.difference(expression.index))
    if unknown:
        raise InvalidParameterError(
            "candidate_regulators",
            "genes not found in the expression matrix: " + ", ".join(unknown[:10]) + (" ..." if len(unknown) > 10 else ""),
        )
    predictors.discard(target_gene)
    positions = [(idx, gene) for idx, gene in enumerate(expression.index) if gene in predictors]
    if not positions:
        raise EmptyPredictorSetError(target_gene)

    predictor_indices = tuple(idx for idx, _ in positions)
    predictor_genes = tuple(gene for _, gene in positions)
    return RegressionTask(
        target_gene=target_gene,
        target_index=int(expression.index.get_loc(target_gene)),
        predictor_genes=predictor_genes,
        predictor_indices=predictor_indices,
        n_samples=int(expression.shape[1]),
        mtry=resolve_mtry(k_spec, len(predictor_genes)),
    )


def build_tasks(
    expression: pd.DataFrame,
    candidate_regulators: Sequence[str],
    k_spec: KSpec = "sqrt",
) -> List[RegressionTask]:
    """Build one task per gene in row order.

    A gene whose only candidate regulator is itself gets no task, so its column
    stays zero. The run is rejected when no gene has any predictor at all.
    """

    tasks: List[RegressionTask] = []
    skipped: List[str] = []
    for gene in expression.index:
        try:
            tasks.append(build_task(expression, gene, candidate_regulators, k_spec))
        except EmptyPredictorSetError:
            if gene not in candidate_regulators:
                raise
            skipped.append(gene)
    if not tasks:
        raise EmptyPredictorSetError(skipped[0] if skipped else None)
    for gene in skipped:
        _LOG.warning("Gene %s is its own only candidate regulator; its column stays zero", gene)
    return tasks


def task_arrays(values: np.ndarray, task: RegressionTask) -> Tuple[np.ndarray, np.ndarray]:
    """Slice a genes x samples array into (samples x predictors, samples) for ``task``."""

    X = np.ascontiguousarray(values[list(task.predictor_indices), :].T, dtype=np.float64)
    y = np.asarray(values[task.target_index, :], dtype=np.float64)
    return X, y


def task_data(expression: pd.DataFrame, task: RegressionTask) -> Tuple[np.ndarray, np.ndarray]:
    return task_arrays(expression.to_numpy(dtype=np.float64), task)
