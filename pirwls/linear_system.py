"""
Параллельное решение плотной симметричной системы IRWLS.

Матрица системы имеет "окаймлённый" вид:

    H = | A    y |        A = K∘(y y^T) + diag(1/a)  (положительно определена)
        | y^T  0 |

Решение: параллельная факторизация Холецкого блока A (Numba prange по строкам
текущего столбца), затем исключение последней переменной через дополнение
Шура:

    A u = r,  A v = y,  s = H[n, n] - y^T v
    x_n = (r_n - y^T u) / s,  x[:n] = u - v x_n
"""

import numba
import numpy as np
from numba import njit, prange


@njit(parallel=True, cache=True)
def cholesky_in_place(A):
    """
    Факторизация Холецкого A = L L^T, L записывается в нижний треугольник A.

    Возвращает -1 при успехе или номер столбца с неположительным ведущим
    элементом. Для матрицы IRWLS ведущие элементы не меньше min(1/a_i) > 0,
    так как a_i <= C * 1e4.

    Столбец k: сначала диагональ, затем строки i > k параллельно; строка i
    читает только уже готовые L[i, :k] и L[k, :k] и пишет только L[i, k].
    """
    n = A.shape[0]
    for k in range(n):
        s = A[k, k]
        for p in range(k):
            s -= A[k, p] * A[k, p]
        if not s > 0.0:
            return k
        d = np.sqrt(s)
        A[k, k] = d
        for i in prange(k + 1, n):
            t = A[i, k]
            for p in range(k):
                t -= A[i, p] * A[k, p]
            A[i, k] = t / d
    return -1


@njit(cache=True)
def cholesky_solve(L, b):
    """Решает L L^T x = b по нижнему треугольнику L."""
    n = L.shape[0]
    z = np.empty(n, dtype=np.float64)
    for i in range(n):
        t = b[i]
        for p in range(i):
            t -= L[i, p] * z[p]
        z[i] = t / L[i, i]
    x = np.empty(n, dtype=np.float64)
    for i in range(n - 1, -1, -1):
        t = z[i]
        for p in range(i + 1, n):
            t -= L[p, i] * x[p]
        x[i] = t / L[i, i]
    return x


def linear_system_threads(threads: int, n_free: int) -> int:
    """
    Число потоков для решения системы.

    Наибольшая степень двойки, не превышающая threads; если свободных
    примеров меньше - наибольшая степень двойки, не превышающая n_free.
    Минимум 1.
    """
    th = 1 << (max(int(threads), 1).bit_length() - 1)
    if n_free < th:
        th = 1 << (int(n_free).bit_length() - 1) if n_free > 0 else 1
    return max(th, 1)


def parallel_linear_system(H: np.ndarray, rhs: np.ndarray, n_threads: int = 1) -> np.ndarray:
    """
    Решает окаймлённую симметричную систему H x = rhs.

    Args:
        H: Матрица (n+1, n+1); ведущий блок (n, n) положительно определён
        rhs: Правая часть (n+1,)
        n_threads: Число потоков Numba на время решения

    Returns:
        x: Решение (n+1,)

    Raises:
        numpy.linalg.LinAlgError: ведущий блок не положительно определён
            или дополнение Шура равно нулю (нет свободных переменных)
    """
    H = np.asarray(H, dtype=np.float64)
    rhs = np.asarray(rhs, dtype=np.float64)
    n = H.shape[0] - 1

    previous_threads = numba.get_num_threads()
    numba.set_num_threads(max(1, min(int(n_threads), numba.config.NUMBA_NUM_THREADS)))
    try:
        L = np.ascontiguousarray(H[:n, :n])
        border = np.ascontiguousarray(H[:n, n])
        failed = cholesky_in_place(L)
        if failed >= 0:
            raise np.linalg.LinAlgError(f"Leading block is not positive definite (column {failed})")
        u = cholesky_solve(L, np.ascontiguousarray(rhs[:n]))
        v = cholesky_solve(L, border)
    finally:
        numba.set_num_threads(previous_threads)

    schur = H[n, n] - np.dot(border, v)
    if schur == 0.0 or not np.isfinite(schur):
        raise np.linalg.LinAlgError("Singular bordered system: zero Schur complement")

    x = np.empty(n + 1, dtype=np.float64)
    x[n] = (rhs[n] - np.dot(border, u)) / schur
    x[:n] = u - v * x[n]
    return x
