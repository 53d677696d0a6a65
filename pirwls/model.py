"""
Модель SVM: опорные векторы, веса, bias; сохранение, загрузка, предсказание.

Признаки всех опорных векторов хранятся одним плоским массивом пар
(index, value); каждый вектор завершается элементом с index = -1.
"""

from dataclasses import dataclass

import numpy as np
from numba import njit, prange

from .config import TrainingProperties
from .dataset import FEATURE_DTYPE, SENTINEL_INDEX, Dataset
from .kernels import kernel_between


@dataclass
class SVMModel:
    """Обученный классификатор f(x) = sum_k w_k K(x, sv_k) + bias."""
    kernel_type: int
    gamma: float
    bias: float
    is_sparse: bool
    maxdim: int
    n_svs: int                    # число опорных векторов
    n_elem: int                   # число элементов features (с sentinel)
    weights: np.ndarray           # (n_svs,) beta опорных векторов
    quadratic_value: np.ndarray   # (n_svs,) |sv_k|^2
    features: np.ndarray          # (n_elem,) FEATURE_DTYPE

    def csr_arrays(self):
        """Восстанавливает (indptr, indices, data) опорных векторов из плоского массива."""
        sentinels = np.flatnonzero(self.features["index"] == SENTINEL_INDEX)
        counts = np.diff(np.concatenate([[-1], sentinels])) - 1
        indptr = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        entries = self.features[self.features["index"] != SENTINEL_INDEX]
        return (
            indptr,
            np.ascontiguousarray(entries["index"], dtype=np.int64),
            np.ascontiguousarray(entries["value"], dtype=np.float64),
        )


def build_model(props: TrainingProperties, dataset: Dataset, beta: np.ndarray) -> SVMModel:
    """
    Строит модель из весов обучения.

    Опорные векторы - примеры с ненулевым весом beta_i.

    Args:
        props: Гиперпараметры обучения (тип ядра, gamma)
        dataset: Обучающая выборка
        beta: Веса (l+1,), последний элемент - bias
    """
    l = dataset.l
    beta = np.asarray(beta, dtype=np.float64)
    sv = np.flatnonzero(beta[:l] != 0.0)

    if sv.size > 0:
        features = np.concatenate([dataset.sample_features(i) for i in sv])
    else:
        features = np.empty(0, dtype=FEATURE_DTYPE)

    return SVMModel(
        kernel_type=int(props.kernel_type),
        gamma=float(props.gamma),
        bias=float(beta[l]),
        is_sparse=dataset.is_sparse,
        maxdim=dataset.maxdim,
        n_svs=int(sv.size),
        n_elem=int(features.size),
        weights=beta[sv].copy(),
        quadratic_value=dataset.quadratic_value[sv].copy(),
        features=features,
    )


@njit(parallel=True, cache=True)
def _decision_values(indptr, indices, data, quad,
                     sv_indptr, sv_indices, sv_data, sv_quad,
                     weights, bias, kernel_type, gamma):
    n = indptr.shape[0] - 1
    n_svs = weights.shape[0]
    values = np.empty(n, dtype=np.float64)
    for i in prange(n):
        total = bias
        for k in range(n_svs):
            total += weights[k] * kernel_between(indptr, indices, data, quad, i,
                                                 sv_indptr, sv_indices, sv_data, sv_quad, k,
                                                 kernel_type, gamma)
        values[i] = total
    return values


def decision_function(model: SVMModel, dataset: Dataset) -> np.ndarray:
    """Значения решающей функции f(x) для всех примеров датасета."""
    indptr, indices, data = dataset.csr_arrays()
    sv_indptr, sv_indices, sv_data = model.csr_arrays()
    return _decision_values(indptr, indices, data, dataset.quadratic_value,
                            sv_indptr, sv_indices, sv_data,
                            np.ascontiguousarray(model.quadratic_value, dtype=np.float64),
                            np.ascontiguousarray(model.weights, dtype=np.float64),
                            float(model.bias), int(model.kernel_type), float(model.gamma))


def predict(model: SVMModel, dataset: Dataset) -> np.ndarray:
    """Предсказание класса: +1 при f(x) >= 0, иначе -1."""
    return np.where(decision_function(model, dataset) >= 0.0, 1.0, -1.0)


def save_model(model: SVMModel, path: str) -> None:
    """Сохраняет модель в архив numpy (.npz) по указанному пути без смены расширения."""
    with open(path, "wb") as f:
        np.savez(
            f,
            kernel_type=np.int64(model.kernel_type),
            gamma=np.float64(model.gamma),
            bias=np.float64(model.bias),
            is_sparse=np.bool_(model.is_sparse),
            maxdim=np.int64(model.maxdim),
            n_svs=np.int64(model.n_svs),
            n_elem=np.int64(model.n_elem),
            weights=model.weights,
            quadratic_value=model.quadratic_value,
            features=model.features,
        )


def load_model(path: str) -> SVMModel:
    """Загружает модель, сохранённую save_model."""
    with np.load(path, allow_pickle=False) as archive:
        return SVMModel(
            kernel_type=int(archive["kernel_type"]),
            gamma=float(archive["gamma"]),
            bias=float(archive["bias"]),
            is_sparse=bool(archive["is_sparse"]),
            maxdim=int(archive["maxdim"]),
            n_svs=int(archive["n_svs"]),
            n_elem=int(archive["n_elem"]),
            weights=archive["weights"].copy(),
            quadratic_value=archive["quadratic_value"].copy(),
            features=archive["features"].copy(),
        )
