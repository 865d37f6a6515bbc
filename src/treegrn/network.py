from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .config import InferenceConfig, KSpec, RegulatorSpec
from .data import resolve_candidate_regulators, validate_expression_matrix
from .logging_utils import get_logger
from .models import EnsembleTrainer, TrainerParams, sklearn_importances
from .scheduler import run_tasks
from .tasks import RegressionTask, build_tasks

_LOG = get_logger(__name__)


def normalize_importances(raw: Sequence[float]) -> np.ndarray:
    """Rescale raw importances to sum to 1; an all-zero vector stays all zero."""

    values = np.asarray(raw, dtype=np.float64)
    if values.ndim != 1:
        raise ValueError(f"Importances must be one-dimensional, got shape {values.shape}")
    if not np.isfinite(values).all():
        raise ValueError("Importances must be finite")
    if (values < 0).any():
        raise ValueError("Importances must be non-negative")
    total = float(values.sum())
    if total == 0.0:
        return np.zeros_like(values)
    return values / total


def empty_weight_matrix(gene_names: Sequence[str]) -> pd.DataFrame:
    index = pd.Index(list(gene_names))
    return pd.DataFrame(np.zeros((len(index), len(index)), dtype=np.float64), index=index, columns=index.copy())


def assemble_column(
    matrix: pd.DataFrame,
    target_gene: str,
    predictor_genes: Sequence[str],
    normalized: Sequence[float],
) -> None:
    """Write one target's normalized importances into its column of ``matrix``."""

    weights = np.asarray(normalized, dtype=np.float64)
    if len(predictor_genes) != weights.shape[0]:
        raise ValueError(
            f"Target {target_gene}: {len(predictor_genes)} predictors but {weights.shape[0]} importances"
        )
    if target_gene in predictor_genes:
        raise ValueError(f"Target {target_gene} cannot be among its own predictors")
    matrix.loc[list(predictor_genes), target_gene] = weights


def assemble_matrix(
    gene_names: Sequence[str],
    tasks: Sequence[RegressionTask],
    raw_importances: Mapping[str, np.ndarray],
) -> pd.DataFrame:
    """Normalize every task's importances and build the regulator x target matrix."""

    matrix = empty_weight_matrix(gene_names)
    for task in tasks:
        if task.target_gene not in raw_importances:
            raise RuntimeError(f"No importances were computed for target gene {task.target_gene}")
        normalized = normalize_importances(raw_importances[task.target_gene])
        if not normalized.any():
            _LOG.warning("All importances are zero for target gene %s; its column stays zero", task.target_gene)
        assemble_column(matrix, task.target_gene, task.predictor_genes, normalized)
    return matrix


def infer_network(
    expression_matrix: Union[pd.DataFrame, np.ndarray],
    tree_method: str = "RF",
    k_spec: KSpec = "sqrt",
    num_trees: int = 1000,
    candidate_regulators: RegulatorSpec = None,
    parallelism: int = 1,
    seed: Optional[int] = None,
    *,
    gene_names: Optional[Sequence[str]] = None,
    trainer: Optional[EnsembleTrainer] = None,
    min_samples_leaf: int = 1,
    permutation_importance: bool = False,
    backend: str = "loky",
    verbose: bool = False,
) -> pd.DataFrame:
    """Infer a weighted regulatory network from a genes x samples expression matrix.

    Each gene in turn is regressed on the candidate regulators (minus itself) with a
    tree ensemble; its normalized importances fill that gene's column. Element
    ``(i, j)`` of the returned frame is the weight of the link from regulator ``i``
    to target ``j``. The diagonal and rows of non-candidate genes are zero.

    All inputs are validated before any ensemble is trained.
    """

    config = InferenceConfig(
        tree_method=tree_method,
        k_spec=k_spec,
        num_trees=num_trees,
        candidate_regulators=candidate_regulators,
        parallelism=parallelism,
        seed=seed,
        min_samples_leaf=min_samples_leaf,
        permutation_importance=permutation_importance,
        joblib_backend=backend,
        verbose=verbose,
    )
    return infer_network_from_config(expression_matrix, config, gene_names=gene_names, trainer=trainer)


def infer_network_from_config(
    expression_matrix: Union[pd.DataFrame, np.ndarray],
    config: InferenceConfig,
    *,
    gene_names: Optional[Sequence[str]] = None,
    trainer: Optional[EnsembleTrainer] = None,
) -> pd.DataFrame:
    config.validate()
    expression = validate_expression_matrix(expression_matrix, gene_names=gene_names)
    regulators = resolve_candidate_regulators(expression, config.candidate_regulators)
    tasks = build_tasks(expression, regulators, config.k_spec)

    _LOG.info(
        "Tree method: %s | K: %s | Number of trees: %d | genes=%d | samples=%d | regulators=%d",
        config.tree_method,
        config.k_spec,
        config.num_trees,
        expression.shape[0],
        expression.shape[1],
        len(regulators),
    )

    params = TrainerParams(
        tree_method=config.tree_method,
        num_trees=config.num_trees,
        min_samples_leaf=config.min_samples_leaf,
        permutation_importance=config.permutation_importance,
    )
    raw: Dict[str, np.ndarray] = run_tasks(
        expression,
        tasks,
        trainer if trainer is not None else sklearn_importances,
        params,
        parallelism=config.parallelism,
        seed=config.seed,
        backend=config.joblib_backend,
        verbose=config.verbose,
    )
    return assemble_matrix(list(expression.index), tasks, raw)
