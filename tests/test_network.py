import pickle

import numpy as np
import pandas as pd
import pytest

from treegrn import infer_network
from treegrn.errors import EmptyPredictorSetError, InvalidParameterError, TaskFailedError
from treegrn.network import assemble_column, assemble_matrix, empty_weight_matrix, normalize_importances
from treegrn.tasks import build_tasks


def _zero_trainer(X, y, params, random_state):
    return np.zeros(X.shape[1])


def _failing_trainer(X, y, params, random_state):
    raise ArithmeticError("ensemble exploded")


def _short_trainer(X, y, params, random_state):
    return np.ones(X.shape[1] + 1)


def test_normalize_sums_to_one():
    normalized = normalize_importances([1.0, 3.0, 0.0, 4.0])
    np.testing.assert_allclose(normalized, [0.125, 0.375, 0.0, 0.5])
    assert normalized.sum() == pytest.approx(1.0)


def test_normalize_all_zero_stays_zero():
    normalized = normalize_importances([0.0, 0.0, 0.0])
    assert np.all(normalized == 0.0)
    assert not np.isnan(normalized).any()


@pytest.mark.parametrize("raw", [[1.0, -0.5], [np.nan, 1.0], [[1.0, 2.0]]])
def test_normalize_rejects_invalid_input(raw):
    with pytest.raises(ValueError):
        normalize_importances(raw)


def test_assemble_column_only_touches_its_column():
    matrix = empty_weight_matrix(["a", "b", "c"])
    assemble_column(matrix, "b", ["a", "c"], [0.25, 0.75])

    assert matrix.loc["a", "b"] == 0.25
    assert matrix.loc["c", "b"] == 0.75
    assert matrix["a"].sum() == 0.0
    assert matrix["c"].sum() == 0.0
    assert matrix.loc["b", "b"] == 0.0


def test_assemble_column_rejects_length_mismatch():
    matrix = empty_weight_matrix(["a", "b", "c"])
    with pytest.raises(ValueError):
        assemble_column(matrix, "b", ["a", "c"], [1.0])


def test_assemble_matrix_requires_every_task(expression):
    tasks = build_tasks(expression, list(expression.index))
    raw = {task.target_gene: np.ones(task.n_predictors) for task in tasks[:-1]}
    with pytest.raises(RuntimeError, match="gene_D"):
        assemble_matrix(list(expression.index), tasks, raw)


def test_default_run_scenario(expression):
    from treegrn import rank_links

    matrix = infer_network(expression, seed=7)

    assert matrix.shape == (4, 4)
    assert list(matrix.index) == list(expression.index)
    assert list(matrix.columns) == list(expression.index)
    np.testing.assert_array_equal(np.diag(matrix.to_numpy()), np.zeros(4))

    links = rank_links(matrix, max_count=3)
    assert len(links) == 3
    assert links["weight"].is_monotonic_decreasing


def test_columns_sum_to_one(wide_expression):
    matrix = infer_network(wide_expression, num_trees=50, seed=1)

    np.testing.assert_allclose(matrix.sum(axis=0).to_numpy(), np.ones(8))
    assert (matrix.to_numpy() >= 0).all()
    # g1 is built from g0, so g0 dominates g1's column
    assert matrix["g1"].idxmax() == "g0"


def test_constant_target_gives_zero_column(wide_expression):
    wide_expression.loc["g5"] = 3.0
    matrix = infer_network(wide_expression, num_trees=20, seed=3)

    assert (matrix["g5"] == 0.0).all()
    assert not np.isnan(matrix.to_numpy()).any()


def test_candidate_subset_zeroes_other_rows(wide_expression):
    regulators = ["g0", "g2", "g5"]
    matrix = infer_network(wide_expression, num_trees=20, candidate_regulators=regulators, seed=11)

    others = [gene for gene in matrix.index if gene not in regulators]
    assert (matrix.loc[others] == 0.0).all().all()
    assert list(matrix.columns) == list(wide_expression.index)
    np.testing.assert_array_equal(np.diag(matrix.to_numpy()), np.zeros(8))
    np.testing.assert_allclose(matrix.sum(axis=0).to_numpy(), np.ones(8))


def test_regulator_indices_match_names(wide_expression):
    by_name = infer_network(wide_expression, num_trees=20, candidate_regulators=["g0", "g3"], seed=5)
    by_index = infer_network(wide_expression, num_trees=20, candidate_regulators=[0, 3], seed=5)
    pd.testing.assert_frame_equal(by_name, by_index)


def test_single_candidate_regulator(expression):
    matrix = infer_network(expression, num_trees=25, candidate_regulators=["gene_A"], seed=2)

    assert (matrix.drop(index="gene_A") == 0.0).all().all()
    assert (matrix["gene_A"] == 0.0).all()
    # every other target has gene_A as its sole predictor
    for target in ["gene_B", "gene_C"]:
        assert matrix.loc["gene_A", target] == pytest.approx(1.0)


def test_one_gene_matrix_has_no_predictors():
    single = pd.DataFrame([[1.0, 2.0, 3.0]], index=["only"])
    with pytest.raises(EmptyPredictorSetError):
        infer_network(single, num_trees=5, seed=0)


def test_sequential_and_parallel_runs_are_identical(wide_expression):
    sequential = infer_network(wide_expression, num_trees=15, seed=123, parallelism=1)
    parallel = infer_network(wide_expression, num_trees=15, seed=123, parallelism=4)

    np.testing.assert_array_equal(sequential.to_numpy(), parallel.to_numpy())


def test_extra_trees_runs(expression):
    matrix = infer_network(expression, tree_method="ET", k_spec="all", num_trees=20, seed=4)
    np.testing.assert_allclose(matrix.sum(axis=0).to_numpy(), np.ones(4))


def test_permutation_importance_keeps_invariants(wide_expression):
    matrix = infer_network(wide_expression, num_trees=15, seed=8, permutation_importance=True)

    assert (matrix.to_numpy() >= 0).all()
    np.testing.assert_array_equal(np.diag(matrix.to_numpy()), np.zeros(8))
    sums = matrix.sum(axis=0).to_numpy()
    assert np.all(np.isclose(sums, 1.0) | np.isclose(sums, 0.0))


def test_numpy_input_with_gene_names(expression):
    from_frame = infer_network(expression, num_trees=10, seed=9)
    from_array = infer_network(expression.to_numpy(), num_trees=10, seed=9, gene_names=list(expression.index))
    np.testing.assert_array_equal(from_frame.to_numpy(), from_array.to_numpy())


def test_custom_trainer_all_zero(expression):
    matrix = infer_network(expression, trainer=_zero_trainer, seed=0)
    assert (matrix.to_numpy() == 0.0).all()


def test_trainer_failure_names_the_gene(expression):
    with pytest.raises(TaskFailedError) as excinfo:
        infer_network(expression, trainer=_failing_trainer, seed=0)
    assert excinfo.value.target_gene == "gene_A"
    assert isinstance(excinfo.value.__cause__, ArithmeticError)


def test_trainer_failure_in_parallel_mode(expression):
    with pytest.raises(TaskFailedError) as excinfo:
        infer_network(expression, trainer=_failing_trainer, seed=0, parallelism=2, backend="threading")
    assert excinfo.value.target_gene in set(expression.index)
    assert isinstance(excinfo.value.reason, ArithmeticError)


def test_trainer_with_wrong_output_length(expression):
    with pytest.raises(TaskFailedError):
        infer_network(expression, trainer=_short_trainer, seed=0)


@pytest.mark.parametrize(
    "kwargs, parameter",
    [
        ({"tree_method": "GBM"}, "tree_method"),
        ({"k_spec": "half"}, "k_spec"),
        ({"k_spec": 0}, "k_spec"),
        ({"num_trees": 0}, "num_trees"),
        ({"parallelism": 0}, "parallelism"),
        ({"seed": -1}, "seed"),
        ({"candidate_regulators": ["gene_Z"]}, "candidate_regulators"),
        ({"candidate_regulators": [0, 9]}, "candidate_regulators"),
        ({"candidate_regulators": ["gene_A", 1]}, "candidate_regulators"),
    ],
)
def test_invalid_parameters_fail_before_training(expression, kwargs, parameter):
    with pytest.raises(InvalidParameterError) as excinfo:
        infer_network(expression, trainer=_failing_trainer, **kwargs)
    assert excinfo.value.parameter == parameter


def test_task_failure_survives_pickling():
    error = TaskFailedError("gene_B", ValueError("bad split"))
    restored = pickle.loads(pickle.dumps(error))

    assert restored.target_gene == "gene_B"
    assert isinstance(restored.reason, ValueError)
    assert "gene_B" in str(restored)
