"""
IRWLS (Iteratively Reweighted Least Squares) на рабочем множестве.

Подзадача двойственной задачи SVM на рабочем множестве решается
последовательностью взвешенных задач наименьших квадратов
(Pérez-Cruz et al., 2001. "Fast Training of Support Vector Classifiers"):

    a_i = 0                 если e_i y_i < 0
    a_i = C * 1e4           если 0 <= e_i y_i < 1e-4
    a_i = y_i C / e_i       иначе

Примеры рабочего множества делятся на три группы:
    FREE     - неизвестные линейной системы
    BOUND    - beta_i y_i = C, вклад переносится в правую часть (G13)
    INACTIVE - a_i = 0, beta_i = 0

Линейная система на каждой итерации (|FREE|+1 неизвестных, последняя - bias):

    | K∘(y y^T) + diag(1/a)   y | |alpha|   | 1 - G13 - GIN      |
    | y^T                     0 | |  b  | = | -G13[n] - GIN[n]   |

Влияние остальных (неактивных) примеров обучающей выборки передаётся
извне вектором GIN и на итерациях не меняется.
"""

import numpy as np
from numba import njit, prange

from .config import (
    BOUND_BAND_HIGH,
    BOUND_BAND_LOW,
    INNER_MAX_ITER,
    INNER_MAX_ITERS_SINCE_BEST,
    INNER_MIN_ITER,
    INNER_NO_IMPROVEMENT,
    INNER_RELATIVE_TOL,
    MAX_WEIGHT_FACTOR,
    NEAR_ZERO_ERROR,
)
from .kernels import kernel_function
from .linear_system import linear_system_threads, parallel_linear_system

FREE = 1
INACTIVE = 2
BOUND = 3


# =============================================================================
# Numba-функции построения системы и обновления ошибок
# =============================================================================

@njit(parallel=True, cache=True)
def build_system(indptr, indices, data, quad, y, a, free, G13, gin, kernel_type, gamma):
    """
    Строит матрицу H и правую часть et для свободных примеров.

    Параллельно по строкам; строка i пишет только H[i, :], H[n_free, i] и et[i].
    """
    n_free = free.shape[0]
    n = y.shape[0]
    H = np.zeros((n_free + 1, n_free + 1), dtype=np.float64)
    et = np.zeros(n_free + 1, dtype=np.float64)
    for i in prange(n_free):
        fi = free[i]
        H[i, n_free] = y[fi]
        H[n_free, i] = y[fi]
        et[i] = 1.0 - G13[i] - gin[fi]
        for j in range(n_free):
            fj = free[j]
            H[i, j] = kernel_function(indptr, indices, data, quad, fi, fj, kernel_type, gamma) * y[fi] * y[fj]
        H[i, i] += 1.0 / a[fi]
    H[n_free, n_free] = 0.0
    et[n_free] = -G13[n_free] - gin[n]
    return H, et


@njit(parallel=True, cache=True)
def bound_influence(indptr, indices, data, quad, y, free, bound, C, kernel_type, gamma):
    """
    Вектор G13: влияние примеров на границе (beta_o y_o = C) на свободные.

        G13[i] = sum_o C K(i, o) y_i y_o,   G13[n_free] = sum_o C y_o
    """
    n_free = free.shape[0]
    n_bound = bound.shape[0]
    G13 = np.zeros(n_free + 1, dtype=np.float64)
    for i in prange(n_free + 1):
        total = 0.0
        if i < n_free:
            fi = free[i]
            for o in range(n_bound):
                bo = bound[o]
                total += C * kernel_function(indptr, indices, data, quad, fi, bo, kernel_type, gamma) * y[fi] * y[bo]
        else:
            for o in range(n_bound):
                total += C * y[bound[o]]
        G13[i] = total
    return G13


@njit(parallel=True, cache=True)
def update_errors(indptr, indices, data, quad, e, changed, delta, delta_bias, kernel_type, gamma):
    """
    Инкрементальное обновление ошибок e_i = y_i - f(x_i) после изменения весов.

    Учитываются только примеры changed с ненулевым изменением delta и
    изменение bias. Параллельно по i, e[i] пишет только свой поток.
    """
    n = e.shape[0]
    n_changed = changed.shape[0]
    for i in prange(n):
        t = e[i]
        for j in range(n_changed):
            t -= kernel_function(indptr, indices, data, quad, i, changed[j], kernel_type, gamma) * delta[j]
        e[i] = t - delta_bias


# =============================================================================
# Вспомогательные функции
# =============================================================================

def irwls_weights(e: np.ndarray, y: np.ndarray, C: float) -> np.ndarray:
    """Веса a_i взвешенной задачи наименьших квадратов (с ограничением C*1e4)."""
    ey = e * y
    with np.errstate(divide="ignore", invalid="ignore"):
        a = np.where(
            ey < 0.0,
            0.0,
            np.where(ey < NEAR_ZERO_ERROR, C * MAX_WEIGHT_FACTOR, y * C / e),
        )
    return a


def relative_change(delta: float, norm: float) -> float:
    """
    Отношение |beta_new - beta|^2 / |beta|^2.

    При нулевой норме: 0 если изменений нет, иначе +inf.
    """
    if norm > 0.0:
        return delta / norm
    return 0.0 if delta == 0.0 else np.inf


def _split_groups(group: np.ndarray):
    """
    Номера свободных и граничных примеров.

    Без свободных примеров в системе нет строки равенства, и граничные
    веса C*y нарушили бы sum beta = -GIN[n]; тогда граничные примеры
    переводятся в свободные (group меняется на месте).
    """
    free = np.flatnonzero(group == FREE)
    bound = np.flatnonzero(group == BOUND)
    if free.size == 0 and bound.size > 0:
        group[bound] = FREE
        return bound, bound[:0]
    return free, bound


# =============================================================================
# IRWLS на рабочем множестве
# =============================================================================

def sub_irwls(subset, props, gin: np.ndarray, e: np.ndarray, beta: np.ndarray) -> np.ndarray:
    """
    IRWLS на рабочем множестве.

    Args:
        subset: Поддатасет рабочего множества (n примеров)
        props: TrainingProperties
        gin: Влияние неактивных примеров (n+1,), последний элемент - для bias
        e: Текущие ошибки примеров рабочего множества (n,), изменяется на месте
        beta: Текущие веса рабочего множества и bias (n+1,), изменяется на месте

    Returns:
        beta_best: Лучшие найденные веса (n+1,), последний элемент - bias
    """
    n = subset.l
    C = float(props.C)
    kernel_type = int(props.kernel_type)
    gamma = float(props.gamma)

    y = subset.y
    quad = subset.quadratic_value
    indptr, indices, data = subset.csr_arrays()
    gin = np.ascontiguousarray(gin, dtype=np.float64)
    e = np.asarray(e, dtype=np.float64)
    beta = np.asarray(beta, dtype=np.float64)

    # Инициализация групп
    a = irwls_weights(e, y, C)
    group = np.where(a == 0.0, INACTIVE, np.where(beta[:n] == C * y, BOUND, FREE))
    free, bound = _split_groups(group)
    if bound.size > 0:
        G13 = bound_influence(indptr, indices, data, quad, y, free, bound, C, kernel_type, gamma)
    else:
        G13 = np.zeros(free.size + 1, dtype=np.float64)

    beta_best = np.zeros(n + 1, dtype=np.float64)
    best_ratio = INNER_NO_IMPROVEMENT
    iters_since_best = 0
    ratio = INNER_NO_IMPROVEMENT
    min_beta = 0.0
    max_beta = 0.0
    iteration = 0

    while iteration < INNER_MIN_ITER or (
        (min_beta < 0.0 or max_beta > C)
        and iteration < INNER_MAX_ITER
        and iters_since_best < INNER_MAX_ITERS_SINCE_BEST
        and ratio > INNER_RELATIVE_TOL
    ):
        iteration += 1
        n_free = free.size

        # ------------------------------------------------------------------
        # Линейная система и новые веса
        # ------------------------------------------------------------------
        beta_new = np.zeros(n + 1, dtype=np.float64)
        min_beta = 0.0
        max_beta = 0.0
        if n_free > 0:
            H, et = build_system(indptr, indices, data, quad, y, a, free, G13, gin, kernel_type, gamma)
            solution = parallel_linear_system(H, et, linear_system_threads(props.threads, n_free))
            min_beta = min(0.0, float(solution[:n_free].min()))
            max_beta = max(0.0, float(solution[:n_free].max()))
            beta_new[free] = solution[:n_free] * y[free]
            beta_new[n] = solution[n_free]
        else:
            # Без свободных примеров ограничение на bias вырождено
            beta_new[n] = beta[n]
        beta_new[bound] = C * y[bound]

        diff = beta_new - beta
        ratio = relative_change(float(np.dot(diff, diff)), float(np.dot(beta, beta)))

        # ------------------------------------------------------------------
        # Ошибки рабочего множества
        # ------------------------------------------------------------------
        changed = np.flatnonzero(diff[:n] != 0.0)
        update_errors(indptr, indices, data, quad, e, changed,
                      np.ascontiguousarray(diff[changed]), float(diff[n]), kernel_type, gamma)

        if ratio < best_ratio:
            best_ratio = ratio
            iters_since_best = 0
            beta_best = beta_new.copy()
        else:
            iters_since_best += 1

        # ------------------------------------------------------------------
        # Перераспределение по группам
        # ------------------------------------------------------------------
        a = irwls_weights(e, y, C)
        y_beta = y * beta_new[:n]
        group[e * y < 0.0] = INACTIVE
        group[(group == FREE) & (y_beta >= BOUND_BAND_LOW * C) & (y_beta <= BOUND_BAND_HIGH * C)] = BOUND
        group[(group == FREE) & (a == 0.0)] = INACTIVE
        group[(group == INACTIVE) & (a != 0.0)] = FREE
        beta[:] = beta_new

        free, bound = _split_groups(group)
        if bound.size > 0:
            G13 = bound_influence(indptr, indices, data, quad, y, free, bound, C, kernel_type, gamma)
        else:
            G13 = np.zeros(free.size + 1, dtype=np.float64)

    return beta_best
