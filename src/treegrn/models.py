from dataclasses import dataclass
from typing import Protocol

import numpy as np
from sklearn.ensemble import ExtraTreesRegressor, RandomForestRegressor
from sklearn.inspection import permutation_importance as _permutation_importance

from .config import TREE_METHODS


@dataclass(frozen=True)
class TrainerParams:
    tree_method: str = "RF"
    mtry: int = 1
    num_trees: int = 1000
    min_samples_leaf: int = 1
    permutation_importance: bool = False
    permutation_repeats: int = 5

    @property
    def bootstrap(self) -> bool:
        return self.tree_method == "RF"

    @property
    def bagging(self) -> bool:
        return self.tree_method == "RF"

    @property
    def extra_randomization(self) -> bool:
        return self.tree_method == "ET"


class EnsembleTrainer(Protocol):
    """Fits a tree ensemble on (X, y) and returns one raw importance per column of X."""

    def __call__(self, X: np.ndarray, y: np.ndarray, params: TrainerParams, random_state: int) -> np.ndarray:
        ...


def _ensemble_params(params: TrainerParams, n_predictors: int, random_state: int) -> dict[str, object]:
    return {
        "n_estimators": params.num_trees,
        "max_depth": None,
        "min_samples_leaf": params.min_samples_leaf,
        # max_features above the predictor count is rejected by sklearn
        "max_features": max(1, min(params.mtry, n_predictors)),
        "bootstrap": params.bootstrap,
        # parallelism belongs to the scheduler
        "n_jobs": 1,
        "random_state": random_state,
    }


def build_tree_ensemble(params: TrainerParams, n_predictors: int, random_state: int) -> object:
    if params.tree_method == "RF":
        return RandomForestRegressor(**_ensemble_params(params, n_predictors, random_state))
    if params.tree_method == "ET":
        return ExtraTreesRegressor(**_ensemble_params(params, n_predictors, random_state))
    raise ValueError(f"Unknown tree method: {params.tree_method} (expected one of {', '.join(TREE_METHODS)})")


def sklearn_importances(X: np.ndarray, y: np.ndarray, params: TrainerParams, random_state: int) -> np.ndarray:
    """Default trainer backed by scikit-learn.

    Impurity importances are summed per tree without sklearn's per-tree
    normalization and averaged over the ensemble, so a target that no split can
    explain yields all zeros instead of NaN.
    """

    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if X.ndim != 2 or y.ndim != 1 or X.shape[0] != y.shape[0]:
        raise ValueError(f"Trainer expects X (samples x predictors) and y (samples), got {X.shape} and {y.shape}")

    ensemble = build_tree_ensemble(params, X.shape[1], random_state)
    ensemble.fit(X, y)

    if params.permutation_importance:
        result = _permutation_importance(
            ensemble,
            X,
            y,
            n_repeats=params.permutation_repeats,
            random_state=random_state,
            n_jobs=1,
        )
        return np.clip(np.asarray(result.importances_mean, dtype=np.float64), 0.0, None)

    per_tree = np.asarray(
        [tree.tree_.compute_feature_importances(normalize=False) for tree in ensemble.estimators_],
        dtype=np.float64,
    )
    return per_tree.sum(axis=0) / len(ensemble.estimators_)
