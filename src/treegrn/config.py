import numbers
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .errors import InvalidParameterError

TREE_METHODS = ("RF", "ET")
K_SYMBOLS = ("sqrt", "all")

KSpec = Union[str, int]
RegulatorSpec = Optional[Sequence[Union[str, int]]]


def _is_int(value: object) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def validate_k_spec(k_spec: object) -> KSpec:
    if isinstance(k_spec, str):
        if k_spec not in K_SYMBOLS:
            raise InvalidParameterError("k_spec", f"must be 'sqrt', 'all' or a positive integer, got {k_spec!r}")
        return k_spec
    if _is_int(k_spec) and int(k_spec) >= 1:
        return int(k_spec)
    raise InvalidParameterError("k_spec", f"must be 'sqrt', 'all' or a positive integer, got {k_spec!r}")


@dataclass
class InferenceConfig:
    tree_method: str = "RF"
    k_spec: KSpec = "sqrt"
    num_trees: int = 1000
    candidate_regulators: RegulatorSpec = None
    parallelism: int = 1
    seed: Optional[int] = None
    # nmin of the tree builder: minimum number of samples in a leaf
    min_samples_leaf: int = 1
    permutation_importance: bool = False
    joblib_backend: str = "loky"
    verbose: bool = False

    def validate(self) -> None:
        if self.tree_method not in TREE_METHODS:
            raise InvalidParameterError(
                "tree_method", f"must be 'RF' (Random Forests) or 'ET' (Extra-Trees), got {self.tree_method!r}"
            )
        self.k_spec = validate_k_spec(self.k_spec)
        if not _is_int(self.num_trees) or self.num_trees < 1:
            raise InvalidParameterError("num_trees", f"must be a strictly positive integer, got {self.num_trees!r}")
        if not _is_int(self.parallelism) or self.parallelism < 1:
            raise InvalidParameterError("parallelism", f"must be a strictly positive integer, got {self.parallelism!r}")
        if self.seed is not None and (not _is_int(self.seed) or self.seed < 0):
            raise InvalidParameterError("seed", f"must be a non-negative integer or None, got {self.seed!r}")
        if not _is_int(self.min_samples_leaf) or self.min_samples_leaf < 1:
            raise InvalidParameterError(
                "min_samples_leaf", f"must be a strictly positive integer, got {self.min_samples_leaf!r}"
            )
        if not self.joblib_backend:
            raise InvalidParameterError("joblib_backend", "must be a non-empty backend name")
        if self.candidate_regulators is not None:
            if isinstance(self.candidate_regulators, (str, bytes)):
                raise InvalidParameterError(
                    "candidate_regulators", "must be a sequence of gene names or indices, not a single string"
                )
            if len(self.candidate_regulators) == 0:
                raise InvalidParameterError("candidate_regulators", "must contain at least one candidate regulator")


@dataclass
class OutputConfig:
    output_dir: Path
    logs_dir: Path

    @classmethod
    def from_base(cls, output_dir: str | Path) -> "OutputConfig":
        root = Path(output_dir).expanduser().resolve()
        return cls(root, (root / "logs").resolve())

    def ensure_directories(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class RunConfig:
    expression_path: Path
    outputs: OutputConfig
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    layer: Optional[str] = None
    transpose: bool = False
    max_links: Optional[int] = None
    min_weight: Optional[float] = None
    run_name: Optional[str] = None

    def output_files(self) -> List[Path]:
        name = self.run_name or "treegrn"
        return [
            self.outputs.output_dir / f"{name}_weight_matrix.tsv",
            self.outputs.output_dir / f"{name}_links.tsv",
        ]
