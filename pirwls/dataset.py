"""
Обучающая выборка и чтение файлов.

Примеры хранятся построчно в CSR-матрице (индекс столбца = индекс признака),
метки нормализованы к {-1, +1}, квадраты норм предвычислены для RBF ядра.
"""

import os
from dataclasses import dataclass

import numpy as np
from scipy import sparse
from sklearn.datasets import load_svmlight_file

from .config import CSV_FORMAT, LIBSVM_FORMAT
from .kernels import squared_norms

# dtype элемента разреженного примера; index = -1 завершает пример
FEATURE_DTYPE = np.dtype([("index", np.int64), ("value", np.float64)])
SENTINEL_INDEX = -1


@dataclass
class Dataset:
    """
    Набор обучающих примеров.

    Только для чтения во время обучения.
    """
    X: sparse.csr_matrix           # (l, maxdim), индексы внутри строк отсортированы
    y: np.ndarray                  # метки {-1, +1}
    quadratic_value: np.ndarray    # |x_i|^2
    is_sparse: bool = True

    @classmethod
    def from_arrays(cls, X, y, is_sparse=None) -> "Dataset":
        """
        Создаёт датасет из матрицы признаков и меток.

        Args:
            X: Плотная матрица (n_samples, n_features) или scipy.sparse матрица
            y: Метки; > 0 становится +1, остальные -1
            is_sparse: Флаг разреженного формата (по умолчанию - по типу X)
        """
        if is_sparse is None:
            is_sparse = sparse.issparse(X)
        if sparse.issparse(X):
            X = sparse.csr_matrix(X, dtype=np.float64, copy=True)
        else:
            X = sparse.csr_matrix(np.atleast_2d(np.asarray(X, dtype=np.float64)))
        X.sum_duplicates()
        X.sort_indices()

        y = np.asarray(y, dtype=np.float64).ravel()
        if y.shape[0] != X.shape[0]:
            raise ValueError(f"X has {X.shape[0]} rows but y has {y.shape[0]} labels")
        y = np.where(y > 0, 1.0, -1.0)

        return cls(X=X, y=y, quadratic_value=squared_norms(X), is_sparse=bool(is_sparse))

    @property
    def l(self) -> int:
        return self.X.shape[0]

    @property
    def maxdim(self) -> int:
        return self.X.shape[1]

    def csr_arrays(self):
        """(indptr, indices, data) с фиксированными dtype для Numba."""
        return (
            np.ascontiguousarray(self.X.indptr, dtype=np.int64),
            np.ascontiguousarray(self.X.indices, dtype=np.int64),
            np.ascontiguousarray(self.X.data, dtype=np.float64),
        )

    def subset(self, indices) -> "Dataset":
        """Поддатасет из примеров с заданными номерами (в заданном порядке)."""
        indices = np.asarray(indices, dtype=np.int64)
        X_sub = self.X[indices]
        X_sub.sort_indices()
        return Dataset(
            X=X_sub,
            y=self.y[indices],
            quadratic_value=self.quadratic_value[indices],
            is_sparse=self.is_sparse,
        )

    def sample_features(self, i: int) -> np.ndarray:
        """Признаки примера i в виде пар (index, value) с завершающим sentinel."""
        start, end = self.X.indptr[i], self.X.indptr[i + 1]
        features = np.empty(end - start + 1, dtype=FEATURE_DTYPE)
        features["index"][:-1] = self.X.indices[start:end]
        features["value"][:-1] = self.X.data[start:end]
        features[-1] = (SENTINEL_INDEX, 0.0)
        return features


def read_libsvm_file(path: str) -> Dataset:
    """
    Читает файл в формате libsvm: "label index:value index:value ...".

    Индексы признаков сохраняются как записаны в файле.
    """
    X, y = load_svmlight_file(path, dtype=np.float64, zero_based=True)
    return Dataset.from_arrays(X, y, is_sparse=True)


def read_csv_file(path: str, separator: str = ",", labeled: bool = True) -> Dataset:
    """
    Читает файл со строками "label<sep>x_0<sep>x_1...".

    Первый столбец - метка, остальные - признаки. Для неразмеченных данных
    (labeled=False) все столбцы - признаки, метки равны -1.
    """
    data = np.loadtxt(path, delimiter=separator, dtype=np.float64, ndmin=2)
    if not labeled:
        return Dataset.from_arrays(data, np.zeros(data.shape[0]), is_sparse=False)
    if data.shape[1] < 2:
        raise ValueError(f"{path}: expected a label column and at least one feature column")
    return Dataset.from_arrays(data[:, 1:], data[:, 0], is_sparse=False)


def load_dataset(path: str, file_format: int = LIBSVM_FORMAT, separator: str = ",",
                 labeled: bool = True) -> Dataset:
    """Загружает датасет в зависимости от формата (0 - CSV, 1 - libsvm)."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Input file not found: {path}")
    if file_format == CSV_FORMAT:
        return read_csv_file(path, separator, labeled)
    return read_libsvm_file(path)
