"""
Ядерные функции на строках CSR-матрицы (Numba JIT).

Пример задаётся тройкой массивов CSR (indptr, indices, data) и номером строки.
Индексы признаков внутри строки отсортированы, поэтому скалярное произведение
двух разреженных строк считается слиянием за O(nnz_i + nnz_j).

    linear: K(u, v) = u^T v
    rbf:    K(u, v) = exp(-gamma * (|u|^2 + |v|^2 - 2 u^T v))

Квадраты норм |u|^2 предвычисляются один раз при загрузке датасета.
Функции чистые: без общего изменяемого состояния, безопасны для prange.
"""

import numpy as np
from numba import njit, prange

from .config import LINEAR_KERNEL


@njit(fastmath=True, cache=True)
def sparse_dot(indptr_a, indices_a, data_a, i, indptr_b, indices_b, data_b, j):
    """Скалярное произведение строки i матрицы A и строки j матрицы B."""
    p = indptr_a[i]
    p_end = indptr_a[i + 1]
    q = indptr_b[j]
    q_end = indptr_b[j + 1]
    total = 0.0
    while p < p_end and q < q_end:
        ia = indices_a[p]
        ib = indices_b[q]
        if ia == ib:
            total += data_a[p] * data_b[q]
            p += 1
            q += 1
        elif ia < ib:
            p += 1
        else:
            q += 1
    return total


@njit(cache=True)
def kernel_between(indptr_a, indices_a, data_a, quad_a, i,
                   indptr_b, indices_b, data_b, quad_b, j,
                   kernel_type, gamma):
    """Значение ядра между строкой i матрицы A и строкой j матрицы B."""
    dot = sparse_dot(indptr_a, indices_a, data_a, i, indptr_b, indices_b, data_b, j)
    if kernel_type == LINEAR_KERNEL:
        return dot
    dist = quad_a[i] + quad_b[j] - 2.0 * dot
    if dist < 0.0:
        # Погрешность округления для совпадающих векторов
        dist = 0.0
    return np.exp(-gamma * dist)


@njit(cache=True)
def kernel_function(indptr, indices, data, quad, i, j, kernel_type, gamma):
    """K(x_i, x_j) для двух примеров одного датасета."""
    return kernel_between(indptr, indices, data, quad, i,
                          indptr, indices, data, quad, j,
                          kernel_type, gamma)


@njit(parallel=True, cache=True)
def kernel_matrix_csr(indptr_a, indices_a, data_a, quad_a,
                      indptr_b, indices_b, data_b, quad_b,
                      kernel_type, gamma):
    """
    Матрица ядра K[i, j] = K(a_i, b_j).

    Параллельно по строкам: каждый поток пишет только свою строку.
    """
    n_a = indptr_a.shape[0] - 1
    n_b = indptr_b.shape[0] - 1
    K = np.empty((n_a, n_b), dtype=np.float64)
    for i in prange(n_a):
        for j in range(n_b):
            K[i, j] = kernel_between(indptr_a, indices_a, data_a, quad_a, i,
                                     indptr_b, indices_b, data_b, quad_b, j,
                                     kernel_type, gamma)
    return K


def squared_norms(X) -> np.ndarray:
    """Квадраты норм строк разреженной матрицы."""
    return np.asarray(X.multiply(X).sum(axis=1), dtype=np.float64).ravel()


def kernel_matrix(dataset_a, dataset_b, kernel_type: int, gamma: float) -> np.ndarray:
    """
    Матрица ядра между всеми примерами двух датасетов.

    Args:
        dataset_a: Датасет (строки результата)
        dataset_b: Датасет (столбцы результата)
        kernel_type: 0 - linear, 1 - rbf
        gamma: Параметр RBF

    Returns:
        K: Матрица (dataset_a.l, dataset_b.l)
    """
    indptr_a, indices_a, data_a = dataset_a.csr_arrays()
    indptr_b, indices_b, data_b = dataset_b.csr_arrays()
    return kernel_matrix_csr(indptr_a, indices_a, data_a, dataset_a.quadratic_value,
                             indptr_b, indices_b, data_b, dataset_b.quadratic_value,
                             kernel_type, float(gamma))
