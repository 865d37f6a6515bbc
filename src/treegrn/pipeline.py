import json
import time
from dataclasses import asdict
from pathlib import Path

from .config import RunConfig
from .data import load_expression_matrix, write_link_list, write_weight_matrix
from .logging_utils import get_logger
from .network import infer_network_from_config
from .ranking import rank_links, validate_ranking_parameters

_LOG = get_logger(__name__)


def _json_default(value: object) -> object:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_run_config(config: RunConfig, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(config), indent=2, default=_json_default))
    return path


def run_pipeline(config: RunConfig) -> Path:
    """Load the expression matrix, infer the network and write matrix, links and config."""

    config.inference.validate()
    validate_ranking_parameters(config.max_links, config.min_weight)
    config.outputs.ensure_directories()
    run_name = config.run_name or "treegrn"
    matrix_path, links_path = config.output_files()

    expression = load_expression_matrix(
        config.expression_path,
        layer=config.layer,
        transpose=config.transpose,
    )

    start = time.perf_counter()
    weights = infer_network_from_config(expression, config.inference)
    _LOG.info("Inferred %dx%d weight matrix in %.2fs", weights.shape[0], weights.shape[1], time.perf_counter() - start)

    links = rank_links(weights, max_count=config.max_links, min_weight=config.min_weight)
    if links.empty:
        _LOG.warning("No links with positive weight were found")
    else:
        top = links.iloc[0]
        _LOG.info("Top link: %s -> %s (weight=%.4f)", top["regulator"], top["target"], top["weight"])

    write_weight_matrix(weights, matrix_path)
    write_link_list(links, links_path)
    config_path = write_run_config(config, config.outputs.output_dir / f"{run_name}_config.json")
    _LOG.info("Saved run configuration to %s", config_path)
    return config.outputs.output_dir
