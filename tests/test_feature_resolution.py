import anndata as ad
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from scdd.core.errors import ConfigurationError
from scdd.core.features import resolve_condition, resolve_expression
from scdd.core.utils import detection_rate, log_nonzero


def test_anndata_is_transposed_to_genes_by_samples() -> None:
    x = np.arange(6, dtype=float).reshape(3, 2)
    obs = pd.DataFrame({"condition": ["a", "a", "b"]}, index=["c0", "c1", "c2"])
    var = pd.DataFrame(index=["TNNT2", "VWF"])
    adata = ad.AnnData(X=x, obs=obs, var=var)

    expr = resolve_expression(adata)
    assert expr.matrix.shape == (2, 3)
    assert list(expr.gene_names) == ["TNNT2", "VWF"]
    assert list(expr.sample_names) == ["c0", "c1", "c2"]
    assert expr.obs is adata.obs


def test_explicit_layer_must_exist() -> None:
    adata = ad.AnnData(X=np.ones((2, 2)))
    with pytest.raises(ConfigurationError, match="Layer 'counts' not found"):
        resolve_expression(adata, layer="counts")


def test_sparse_and_array_inputs_get_default_names() -> None:
    expr = resolve_expression(sp.random(3, 4, density=0.5, format="coo", random_state=0))
    assert sp.issparse(expr.matrix)
    assert list(expr.gene_names) == ["gene1", "gene2", "gene3"]
    assert list(resolve_expression(np.ones((1, 2))).sample_names) == ["sample1", "sample2"]


def test_non_finite_values_rejected() -> None:
    with pytest.raises(ConfigurationError, match="NaN/inf"):
        resolve_expression(np.array([[1.0, np.nan]]))


def test_reference_is_first_condition_value() -> None:
    in_ref, reference = resolve_condition(["ctrl", "stim", "ctrl", "stim"], 4)
    assert reference == "ctrl"
    np.testing.assert_array_equal(in_ref, [True, False, True, False])


def test_condition_column_needs_metadata() -> None:
    with pytest.raises(ConfigurationError, match="no sample metadata"):
        resolve_condition("condition", 4)


def test_log_nonzero_keeps_positions() -> None:
    values, ref, positions = log_nonzero(
        np.array([0.0, np.e, 1.0, 0.0]), np.array([True, True, False, False])
    )
    np.testing.assert_allclose(values, [1.0, 0.0])
    np.testing.assert_array_equal(ref, [True, False])
    np.testing.assert_array_equal(positions, [1, 2])


def test_detection_rate_per_sample() -> None:
    mat = np.array([[1.0, 0.0, 2.0], [0.0, 0.0, 3.0]])
    np.testing.assert_allclose(detection_rate(mat), [0.5, 0.0, 1.0])
    np.testing.assert_allclose(detection_rate(sp.csr_matrix(mat)), [0.5, 0.0, 1.0])
