import math
import numbers
from typing import Optional

import numpy as np
import pandas as pd

from .errors import InvalidRankingParameterError

LINK_COLUMNS = ["regulator", "target", "weight"]


def validate_ranking_parameters(max_count: Optional[int], min_weight: Optional[float]) -> None:
    if max_count is not None:
        if not isinstance(max_count, numbers.Integral) or isinstance(max_count, bool) or max_count < 1:
            raise InvalidRankingParameterError(f"max_count must be a strictly positive integer, got {max_count!r}")
    if min_weight is not None:
        if not isinstance(min_weight, numbers.Real) or isinstance(min_weight, bool):
            raise InvalidRankingParameterError(f"min_weight must be a real number, got {min_weight!r}")
        if not math.isfinite(min_weight) or min_weight < 0:
            raise InvalidRankingParameterError(f"min_weight must be finite and non-negative, got {min_weight!r}")


def rank_links(
    matrix: pd.DataFrame,
    max_count: Optional[int] = None,
    min_weight: Optional[float] = None,
) -> pd.DataFrame:
    """Convert a regulator x target weight matrix into a ranked link list.

    Only cells with weight > 0 are links. Rows are sorted by weight descending,
    ties ordered by regulator id then target id. ``min_weight`` keeps links with
    weight >= threshold and ``max_count`` keeps the top N; when both are given the
    threshold is applied first and the survivors are then truncated.
    """

    validate_ranking_parameters(max_count, min_weight)
    if not isinstance(matrix, pd.DataFrame):
        raise InvalidRankingParameterError("matrix must be a pandas DataFrame with gene ids as index and columns")
    if matrix.shape[0] != matrix.shape[1] or not matrix.index.equals(matrix.columns):
        raise InvalidRankingParameterError("matrix must be square with identical row and column gene ids")

    values = matrix.to_numpy(dtype=np.float64)
    rows, cols = np.nonzero(values > 0)
    links = pd.DataFrame(
        {
            "regulator": matrix.index.to_numpy()[rows].astype(str),
            "target": matrix.columns.to_numpy()[cols].astype(str),
            "weight": values[rows, cols],
        },
        columns=LINK_COLUMNS,
    )
    links = links.sort_values(
        ["weight", "regulator", "target"],
        ascending=[False, True, True],
        kind="mergesort",
    )

    if min_weight is not None:
        links = links[links["weight"] >= min_weight]
    if max_count is not None:
        links = links.head(max_count)
    return links.reset_index(drop=True)


def get_link_list(
    matrix: pd.DataFrame,
    report_max: Optional[int] = None,
    threshold: Optional[float] = None,
) -> pd.DataFrame:
    return rank_links(matrix, max_count=report_max, min_weight=threshold)
