"""
Тесты модели: опорные векторы, сохранение/загрузка, предсказание.
"""

import os

import numpy as np
from scipy import sparse

from pirwls.config import LINEAR_KERNEL, RBF_KERNEL, TrainingProperties
from pirwls.dataset import SENTINEL_INDEX, Dataset
from pirwls.kernels import kernel_matrix
from pirwls.model import build_model, decision_function, load_model, predict, save_model


def make_dataset(seed=0):
    X = sparse.random(12, 6, density=0.5, format="csr", random_state=seed)
    rng = np.random.default_rng(seed)
    y = np.where(rng.random(12) > 0.5, 1.0, -1.0)
    return Dataset.from_arrays(X, y)


def make_beta(ds, seed=0):
    rng = np.random.default_rng(seed)
    beta = np.append(rng.random(ds.l) * ds.y, 0.3)
    beta[[1, 4, 8]] = 0.0
    return beta


def test_support_vectors_layout():
    ds = make_dataset()
    beta = make_beta(ds)
    props = TrainingProperties(kernel_type=RBF_KERNEL, gamma=0.7)
    model = build_model(props, ds, beta)

    sv = np.flatnonzero(beta[:-1] != 0.0)
    print(f"  n_svs = {model.n_svs}, n_elem = {model.n_elem}")
    assert model.n_svs == sv.size
    assert np.array_equal(model.weights, beta[sv])
    assert model.bias == 0.3
    assert model.maxdim == 6
    assert model.is_sparse

    n_sentinels = np.sum(model.features["index"] == SENTINEL_INDEX)
    assert n_sentinels == model.n_svs, "Each support vector ends with a sentinel"
    assert model.n_elem == ds.X[sv].nnz + model.n_svs

    indptr, indices, data = model.csr_arrays()
    X_sv = ds.X[sv]
    assert np.array_equal(indptr, X_sv.indptr)
    assert np.array_equal(indices, X_sv.indices)
    assert np.array_equal(data, X_sv.data)


def test_build_model_idempotent():
    ds = make_dataset(seed=1)
    beta = make_beta(ds, seed=1)
    props = TrainingProperties(kernel_type=LINEAR_KERNEL)
    first = build_model(props, ds, beta)
    second = build_model(props, ds, beta)
    assert np.array_equal(first.features, second.features)
    assert np.array_equal(first.weights, second.weights)
    assert first.bias == second.bias


def test_decision_function():
    ds = make_dataset(seed=2)
    beta = make_beta(ds, seed=2)
    props = TrainingProperties(kernel_type=RBF_KERNEL, gamma=0.7)
    model = build_model(props, ds, beta)

    K = kernel_matrix(ds, ds, RBF_KERNEL, 0.7)
    expected = K @ beta[:-1] + beta[-1]
    assert np.allclose(decision_function(model, ds), expected, atol=1e-10)
    assert np.array_equal(predict(model, ds), np.where(expected >= 0.0, 1.0, -1.0))


def test_model_without_support_vectors():
    ds = make_dataset(seed=3)
    beta = np.zeros(ds.l + 1)
    beta[-1] = -0.5
    model = build_model(TrainingProperties(), ds, beta)
    assert model.n_svs == 0
    assert model.n_elem == 0
    assert np.allclose(decision_function(model, ds), -0.5)


def test_save_load(tmp_path):
    ds = make_dataset(seed=4)
    beta = make_beta(ds, seed=4)
    props = TrainingProperties(kernel_type=RBF_KERNEL, gamma=0.25)
    model = build_model(props, ds, beta)

    path = os.path.join(tmp_path, "model.txt")
    save_model(model, path)
    assert os.path.isfile(path), "Model must be written to the exact path"

    loaded = load_model(path)
    assert loaded.kernel_type == RBF_KERNEL
    assert loaded.gamma == 0.25
    assert loaded.bias == model.bias
    assert loaded.n_svs == model.n_svs
    assert loaded.n_elem == model.n_elem
    assert loaded.maxdim == model.maxdim
    assert np.array_equal(loaded.features, model.features)
    assert np.array_equal(loaded.weights, model.weights)
    assert np.array_equal(decision_function(loaded, ds), decision_function(model, ds))
