"""Tree-ensemble inference of gene regulatory networks from expression data."""

from .config import InferenceConfig, OutputConfig, RunConfig
from .errors import (
    EmptyPredictorSetError,
    InvalidParameterError,
    InvalidRankingParameterError,
    InvalidTargetError,
    TaskFailedError,
    TreeGRNError,
)
from .network import infer_network, infer_network_from_config
from .ranking import get_link_list, rank_links, validate_ranking_parameters


def main(*args, **kwargs):  # pragma: no cover - thin wrapper for CLI entrypoint
    # Lazy import avoids double-import warnings when running `python -m treegrn.cli`.
    from .cli import main as _cli_main

    return _cli_main(*args, **kwargs)


__all__ = [
    "InferenceConfig",
    "OutputConfig",
    "RunConfig",
    "TreeGRNError",
    "InvalidParameterError",
    "InvalidTargetError",
    "EmptyPredictorSetError",
    "TaskFailedError",
    "InvalidRankingParameterError",
    "infer_network",
    "infer_network_from_config",
    "rank_links",
    "get_link_list",
    "validate_ranking_parameters",
    "main",
]
