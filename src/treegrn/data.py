from __future__ import annotations

import numbers
from pathlib import Path
from typing import List, Optional, Sequence, Union

import anndata as ad
import numpy as np
import pandas as pd
import scipy.sparse as sp

from .errors import InvalidParameterError
from .logging_utils import get_logger

_LOG = get_logger(__name__)

_TAB_SUFFIXES = {".tsv", ".txt", ".tab"}


def validate_expression_matrix(
    expression: Union[pd.DataFrame, np.ndarray],
    gene_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Return a genes x samples float64 frame indexed by unique string gene ids.

    A bare 2-D array is accepted when ``gene_names`` supplies one name per row.
    Sample labels are kept when present and are never required.
    """

    if isinstance(expression, pd.DataFrame):
        frame = expression
    else:
        values = np.asarray(expression)
        if values.ndim != 2:
            raise InvalidParameterError(
                "expression_matrix",
                "must be a two-dimensional matrix where each row is a gene and each column is a sample",
            )
        frame = pd.DataFrame(values)

    if frame.ndim != 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
        raise InvalidParameterError("expression_matrix", f"must have at least one gene and one sample, got shape {frame.shape}")

    if gene_names is not None:
        names = list(gene_names)
        if len(names) != frame.shape[0]:
            raise InvalidParameterError(
                "gene_names", f"expected {frame.shape[0]} names (one per row), got {len(names)}"
            )
        index = pd.Index(names)
    elif isinstance(frame.index, pd.RangeIndex):
        raise InvalidParameterError("expression_matrix", "must name its genes in the row index (or pass gene_names)")
    else:
        index = frame.index

    if index.hasnans:
        raise InvalidParameterError("expression_matrix", "gene names must not be missing")
    index = index.astype(str)
    if not index.is_unique:
        duplicated = index[index.duplicated()].unique().tolist()
        raise InvalidParameterError(
            "expression_matrix",
            "gene names must be unique; duplicated: " + ", ".join(duplicated[:10]) + (" ..." if len(duplicated) > 10 else ""),
        )

    non_numeric = [
        str(col)
        for col, dtype in frame.dtypes.items()
        if not pd.api.types.is_numeric_dtype(dtype) or pd.api.types.is_bool_dtype(dtype)
    ]
    if non_numeric:
        raise InvalidParameterError(
            "expression_matrix", "all values must be real numbers; non-numeric samples: " + ", ".join(non_numeric[:10])
        )

    values = frame.to_numpy(dtype=np.float64, copy=True)
    if not np.isfinite(values).all():
        raise InvalidParameterError("expression_matrix", "values must be finite (no NaN or infinity)")

    return pd.DataFrame(values, index=index, columns=frame.columns)


def resolve_candidate_regulators(
    expression: pd.DataFrame,
    regulators: Optional[Sequence[Union[str, int]]] = None,
) -> List[str]:
    """Resolve regulator names or zero-based row positions to gene ids in row order."""

    genes = list(expression.index)
    if regulators is None:
        return genes
    if isinstance(regulators, (str, bytes)):
        raise InvalidParameterError(
            "candidate_regulators", "must be a sequence of gene names or indices, not a single string"
        )
    requested = list(regulators)
    if not requested:
        raise InvalidParameterError("candidate_regulators", "must contain at least one candidate regulator")

    is_position = [isinstance(r, numbers.Integral) and not isinstance(r, bool) for r in requested]
    if all(is_position):
        out_of_range = [int(r) for r in requested if not 0 <= int(r) < len(genes)]
        if out_of_range:
            raise InvalidParameterError(
                "candidate_regulators",
                f"indices {out_of_range[:10]} fall outside the {len(genes)} genes of the expression matrix",
            )
        wanted = {genes[int(r)] for r in requested}
    elif not any(is_position):
        names = [str(r) for r in requested]
        missing = list(dict.fromkeys(name for name in names if name not in expression.index))
        if missing:
            for name in missing:
                _LOG.error("Gene %s was not in the expression matrix", name)
            raise InvalidParameterError(
                "candidate_regulators",
                "genes not found in the expression matrix: " + ", ".join(missing[:10]) + (" ..." if len(missing) > 10 else ""),
            )
        wanted = set(names)
    else:
        raise InvalidParameterError("candidate_regulators", "must be all gene names or all indices, not a mixture")

    return [gene for gene in genes if gene in wanted]


def _text_separator(path: Path, sep: Optional[str]) -> str:
    if sep:
        return sep
    suffixes = [s.lower() for s in path.suffixes if s.lower() not in {".gz", ".bz2", ".zip", ".xz"}]
    if suffixes and suffixes[-1] in _TAB_SUFFIXES:
        return "\t"
    return ","


def load_expression_matrix(
    path: Path | str,
    *,
    sep: Optional[str] = None,
    layer: Optional[str] = None,
    transpose: bool = False,
) -> pd.DataFrame:
    """Load a genes x samples expression matrix from a delimited text file or an .h5ad file.

    Text files carry gene ids in the first column; pass ``transpose=True`` when rows
    are samples instead. AnnData stores cells (samples) x genes, so it is always
    transposed, reading ``layer`` when given and ``X`` otherwise.
    """

    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Expression matrix not found at {path}")

    if path.suffix == ".h5ad":
        _LOG.info("Loading AnnData expression matrix from %s", path)
        adata = ad.read_h5ad(path.as_posix())
        if layer:
            if layer not in adata.layers:
                raise InvalidParameterError(
                    "layer", f"{layer!r} not present in {path.name}; available: {', '.join(adata.layers.keys()) or 'none'}"
                )
            matrix = adata.layers[layer]
        else:
            matrix = adata.X
        if sp.issparse(matrix):
            matrix = matrix.toarray()
        frame = pd.DataFrame(
            np.asarray(matrix, dtype=np.float64).T,
            index=pd.Index(adata.var_names.astype(str)),
            columns=pd.Index(adata.obs_names.astype(str)),
        )
    else:
        separator = _text_separator(path, sep)
        _LOG.info("Loading expression matrix from %s (sep=%r)", path, separator)
        frame = pd.read_csv(path, sep=separator, index_col=0)
        if transpose:
            frame = frame.T

    _LOG.info("Loaded expression matrix with %d genes x %d samples", frame.shape[0], frame.shape[1])
    return frame


def read_regulator_file(path: Path | str) -> List[str]:
    """Read newline-delimited regulator names, ignoring blank lines and '#' comments."""

    path = Path(path).expanduser().resolve()
    lines = path.read_text().splitlines()
    stripped = [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]
    return list(dict.fromkeys(stripped))


def write_weight_matrix(matrix: pd.DataFrame, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    matrix.to_csv(path, sep=_text_separator(path, None))
    _LOG.info("Wrote %dx%d weight matrix to %s", matrix.shape[0], matrix.shape[1], path)
    return path


def write_link_list(links: pd.DataFrame, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    links.to_csv(path, sep=_text_separator(path, None), index=False)
    _LOG.info("Wrote %d ranked links to %s", len(links), path)
    return path
