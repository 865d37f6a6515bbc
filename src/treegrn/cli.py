import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import InferenceConfig, OutputConfig, RunConfig
from .data import read_regulator_file
from .errors import InvalidParameterError, InvalidRankingParameterError
from .logging_utils import configure_logging, get_logger
from .pipeline import run_pipeline
from .ranking import validate_ranking_parameters


def _parse_k(value: str) -> object:
    if value in ("sqrt", "all"):
        return value
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"K must be 'sqrt', 'all' or a positive integer, got {value!r}")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="treegrn: infer a gene regulatory network from expression data with tree ensembles"
    )
    parser.add_argument(
        "--expression",
        help="Expression matrix (genes x samples CSV/TSV with gene ids in the first column, or .h5ad)",
    )
    parser.add_argument(
        "--output-dir",
        default=str(Path.cwd() / "output"),
        help="Directory for the weight matrix, link list and logs (defaults to ./output)",
    )
    parser.add_argument("--layer", help="AnnData layer to read instead of X (.h5ad input only)")
    parser.add_argument(
        "--transpose",
        action="store_true",
        help="Text input stores samples as rows and genes as columns",
    )
    parser.add_argument("--tree-method", choices=["RF", "ET"], help="Random Forests (RF, default) or Extra-Trees (ET)")
    parser.add_argument("--k", type=_parse_k, help="Candidate regulators tried at each split: sqrt (default), all, or an integer")
    parser.add_argument("--num-trees", type=int, help="Trees per target gene (default 1000)")
    parser.add_argument("--regulators", nargs="*", help="Candidate regulator gene names (default: all genes)")
    parser.add_argument("--regulator-file", help="Newline-delimited file of candidate regulator gene names")
    parser.add_argument("--parallelism", type=int, help="Number of worker processes (default 1)")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible runs")
    parser.add_argument("--min-samples-leaf", type=int, help="Minimum samples per leaf (default 1)")
    parser.add_argument(
        "--permutation-importance",
        action="store_true",
        help="Score regulators by permutation importance instead of impurity decrease",
    )
    parser.add_argument("--max-links", type=int, help="Report only the top N links")
    parser.add_argument("--min-weight", type=float, help="Report only links with weight >= this threshold")
    parser.add_argument("--run-name", help="Optional run name override")
    parser.add_argument("--config-json", help="Path to configuration JSON file to load")
    parser.add_argument("--verbose", action="store_true", help="Log progress for every target gene")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    if args.config_json:
        config_path = Path(args.config_json).expanduser().resolve()
        if not config_path.exists():
            parser.error(f"Configuration JSON not found at {config_path}")
        payload = json.loads(config_path.read_text())
        try:
            config = _config_from_json(payload)
        except (TypeError, KeyError) as exc:
            parser.error(f"Invalid configuration JSON {config_path}: {exc}")
    else:
        if not args.expression:
            parser.error("--expression is required unless --config-json is given")
        inference = InferenceConfig()
        if args.tree_method:
            inference.tree_method = args.tree_method
        if args.k is not None:
            inference.k_spec = args.k
        if args.num_trees is not None:
            inference.num_trees = args.num_trees
        if args.parallelism is not None:
            inference.parallelism = args.parallelism
        if args.seed is not None:
            inference.seed = args.seed
        if args.min_samples_leaf is not None:
            inference.min_samples_leaf = args.min_samples_leaf
        if args.permutation_importance:
            inference.permutation_importance = True
        inference.verbose = args.verbose

        if args.regulators and args.regulator_file:
            parser.error("Cannot set both --regulators and --regulator-file")
        regulators: Optional[list[str]] = list(args.regulators) if args.regulators else None
        if args.regulator_file:
            regulator_path = Path(args.regulator_file).expanduser().resolve()
            if not regulator_path.exists():
                parser.error(f"Regulator file not found at {regulator_path}")
            regulators = read_regulator_file(regulator_path)
            if not regulators:
                parser.error(f"Regulator file {regulator_path} did not contain any gene names")
        inference.candidate_regulators = regulators

        config = RunConfig(
            expression_path=Path(args.expression).expanduser().resolve(),
            outputs=OutputConfig.from_base(args.output_dir),
            inference=inference,
            layer=args.layer,
            transpose=args.transpose,
            max_links=args.max_links,
            min_weight=args.min_weight,
        )

    try:
        config.inference.validate()
        validate_ranking_parameters(config.max_links, config.min_weight)
    except (InvalidParameterError, InvalidRankingParameterError) as exc:
        parser.error(str(exc))

    run_name = args.run_name or config.run_name or f"treegrn_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    config.run_name = run_name
    config.outputs.ensure_directories()

    log_path = configure_logging(
        config.outputs.logs_dir,
        run_name,
        tree_method=config.inference.tree_method,
        seed=config.inference.seed,
    )
    logger = get_logger(__name__)
    logger.info("Logging to %s", log_path)

    try:
        output_dir = run_pipeline(config)
    except Exception:
        logger.exception("Inference terminated with an error")
        logger.error("RUN_COMPLETE_STATUS=FAILURE")
        raise SystemExit(1)

    logger.info("Inference complete. Results stored in %s", output_dir)
    logger.info("RUN_COMPLETE_STATUS=SUCCESS")


def _config_from_json(payload: dict) -> RunConfig:
    # accepts both hand-written payloads and the <run>_config.json a previous run saved
    output_dir = (
        payload.get("output_dir")
        or payload.get("outputs", {}).get("output_dir")
        or str(Path.cwd() / "output")
    )
    inference_payload = dict(payload.get("inference", {}))
    if inference_payload.get("candidate_regulators") is not None:
        inference_payload["candidate_regulators"] = list(inference_payload["candidate_regulators"])

    return RunConfig(
        expression_path=Path(payload["expression_path"]).expanduser().resolve(),
        outputs=OutputConfig.from_base(output_dir),
        inference=InferenceConfig(**inference_payload),
        layer=payload.get("layer"),
        transpose=payload.get("transpose", False),
        max_links=payload.get("max_links"),
        min_weight=payload.get("min_weight"),
        run_name=payload.get("run_name"),
    )


if __name__ == "__main__":
    main()
