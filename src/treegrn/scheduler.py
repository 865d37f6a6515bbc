import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .errors import InvalidParameterError, TaskFailedError
from .logging_utils import get_logger
from .models import EnsembleTrainer, TrainerParams
from .tasks import RegressionTask, task_arrays

_LOG = get_logger(__name__)


def derive_task_seeds(seed: Optional[int], n_tasks: int) -> List[int]:
    """Spawn one independent random state per task from a single root seed.

    Child ``i`` depends only on ``seed`` and ``i``, so a task draws the same stream
    whichever worker runs it and whenever it finishes. ``seed=None`` pulls fresh
    OS entropy for the root.
    """

    root = np.random.SeedSequence(seed)
    return [int(child.generate_state(1, dtype=np.uint32)[0]) for child in root.spawn(n_tasks)]


def _run_task(
    values: np.ndarray,
    task: RegressionTask,
    trainer: EnsembleTrainer,
    params: TrainerParams,
    random_state: int,
) -> Tuple[str, np.ndarray]:
    X, y = task_arrays(values, task)
    task_params = TrainerParams(
        tree_method=params.tree_method,
        mtry=task.mtry,
        num_trees=params.num_trees,
        min_samples_leaf=params.min_samples_leaf,
        permutation_importance=params.permutation_importance,
        permutation_repeats=params.permutation_repeats,
    )
    try:
        raw = np.asarray(trainer(X, y, task_params, random_state), dtype=np.float64)
        if raw.shape != (task.n_predictors,):
            raise ValueError(
                f"trainer returned {raw.shape} importances for {task.n_predictors} predictors"
            )
    except Exception as exc:
        raise TaskFailedError(task.target_gene, exc) from exc
    return task.target_gene, raw


def run_tasks(
    expression: pd.DataFrame,
    tasks: Sequence[RegressionTask],
    trainer: EnsembleTrainer,
    params: TrainerParams,
    parallelism: int = 1,
    seed: Optional[int] = None,
    *,
    backend: str = "loky",
    verbose: bool = False,
) -> Dict[str, np.ndarray]:
    """Run every task and return raw importances keyed by target gene.

    Results are merged by target id after all tasks complete; any failure aborts
    the run with :class:`TaskFailedError` and no partial mapping is returned.
    """

    if parallelism < 1:
        raise InvalidParameterError("parallelism", f"must be a strictly positive integer, got {parallelism!r}")

    values = expression.to_numpy(dtype=np.float64)
    seeds = derive_task_seeds(seed, len(tasks))
    total = len(tasks)
    progress_level = logging.INFO if verbose else logging.DEBUG
    start = time.perf_counter()

    if parallelism == 1 or total <= 1:
        _LOG.log(progress_level, "Using 1 core for %d target genes", total)
        pairs = []
        for position, (task, task_seed) in enumerate(zip(tasks, seeds), start=1):
            _LOG.log(progress_level, "Computing gene %d/%d (%s)", position, total, task.target_gene)
            pairs.append(_run_task(values, task, trainer, params, task_seed))
    else:
        _LOG.log(progress_level, "Using %d workers (%s backend) for %d target genes", parallelism, backend, total)
        pairs = Parallel(n_jobs=parallelism, backend=backend, verbose=5 if verbose else 0)(
            delayed(_run_task)(values, task, trainer, params, task_seed)
            for task, task_seed in zip(tasks, seeds)
        )

    results: Dict[str, np.ndarray] = {}
    for target_gene, raw in pairs:
        if target_gene in results:
            raise RuntimeError(f"Duplicate result for target gene {target_gene}")
        results[target_gene] = raw

    _LOG.info(
        "Computed importances for %d target genes in %.2fs (parallelism=%d)",
        len(results),
        time.perf_counter() - start,
        parallelism,
    )
    return results
