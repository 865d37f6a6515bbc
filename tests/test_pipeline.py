import json

import pandas as pd
import pytest

from treegrn import pipeline
from treegrn.config import InferenceConfig, OutputConfig, RunConfig
from treegrn.errors import InvalidRankingParameterError


@pytest.fixture
def expression_file(tmp_path, expression):
    path = tmp_path / "expression.tsv"
    expression.to_csv(path, sep="\t")
    return path


@pytest.mark.parametrize(
    "max_links, min_weight",
    [(2.5, None), (0, None), (None, -0.1), (None, "0.1")],
)
def test_invalid_ranking_parameters_fail_before_inference(tmp_path, expression_file, monkeypatch, max_links, min_weight):
    calls = []

    def _record(*args, **kwargs):
        calls.append((args, kwargs))
        raise AssertionError("inference should not run")

    monkeypatch.setattr(pipeline, "load_expression_matrix", _record)
    monkeypatch.setattr(pipeline, "infer_network_from_config", _record)
    config = RunConfig(
        expression_path=expression_file,
        outputs=OutputConfig.from_base(tmp_path / "out"),
        inference=InferenceConfig(num_trees=5, seed=0),
        max_links=max_links,
        min_weight=min_weight,
    )

    with pytest.raises(InvalidRankingParameterError):
        pipeline.run_pipeline(config)
    assert calls == []
    assert not (tmp_path / "out").exists()


def test_run_pipeline_writes_outputs(tmp_path, expression_file):
    config = RunConfig(
        expression_path=expression_file,
        outputs=OutputConfig.from_base(tmp_path / "out"),
        inference=InferenceConfig(num_trees=10, seed=3),
        max_links=3,
        run_name="pipe",
    )

    output_dir = pipeline.run_pipeline(config)

    matrix_path, links_path = config.output_files()
    links = pd.read_csv(links_path, sep="\t")
    saved = json.loads((output_dir / "pipe_config.json").read_text())
    assert matrix_path.exists()
    assert len(links) == 3
    assert saved["max_links"] == 3
