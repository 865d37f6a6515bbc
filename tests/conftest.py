import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def expression() -> pd.DataFrame:
    """Four genes x six samples; gene_B and gene_C track gene_A, gene_D is noise."""

    rng = np.random.default_rng(0)
    a = np.array([0.1, 1.2, 2.3, 3.1, 4.4, 5.0])
    values = np.vstack(
        [
            a,
            2.0 * a + rng.normal(scale=0.05, size=6),
            -a + rng.normal(scale=0.05, size=6),
            rng.normal(size=6),
        ]
    )
    return pd.DataFrame(
        values,
        index=["gene_A", "gene_B", "gene_C", "gene_D"],
        columns=[f"sample_{i}" for i in range(1, 7)],
    )


@pytest.fixture
def wide_expression() -> pd.DataFrame:
    rng = np.random.default_rng(42)
    values = rng.normal(size=(8, 12))
    values[1] = values[0] * 1.5 + rng.normal(scale=0.1, size=12)
    return pd.DataFrame(values, index=[f"g{i}" for i in range(8)])
