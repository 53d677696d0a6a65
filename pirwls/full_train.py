"""
Обучение полного SVM параллельным IRWLS с декомпозицией на рабочие множества.

Алгоритм:
- Pérez-Cruz, F., Alarcón-Diana, P. L., Navia-Vázquez, A., & Artés-Rodríguez, A. (2001).
  "Fast Training of Support Vector Classifiers". NIPS, 734-740.
- Díaz-Morales, R., & Navia-Vázquez, Á. (2016). "Efficient parallel implementation
  of kernel methods". Neurocomputing, 191, 175-186.

Внешний цикл на каждой итерации:
    1. GIN - влияние неактивных примеров на рабочее множество
    2. IRWLS на рабочем множестве (irwls_solver.sub_irwls)
    3. Обновление весов beta и ошибок e = y - f(x) для всей выборки
    4. Критерий остановки |Δbeta|^2 / |beta|^2 < eta
    5. Классификация примеров по нарушению KKT и выбор нового рабочего множества

Веса хранятся со знаком: beta_i = y_i * alpha_i, 0 <= beta_i y_i <= C,
beta[l] - bias.
"""

import warnings
from dataclasses import dataclass, field
from typing import List, Optional

import numba
import numpy as np
from numba import njit, prange
from tqdm.auto import tqdm

from .config import (
    INITIAL_SELECTION_PERIOD,
    MAX_ITERS_SINCE_BEST,
    NO_IMPROVEMENT,
    RESULT_BEST,
    VIOLATION_THRESHOLD,
    TrainingProperties,
)
from .dataset import Dataset
from .irwls_solver import relative_change, sub_irwls, update_errors
from .kernels import kernel_function


@dataclass
class TrainingState:
    """Изменяемое состояние внешнего цикла. Принадлежит только train_full."""
    beta: np.ndarray            # (l+1,) веса и bias
    e: np.ndarray               # (l,) ошибки y_i - f(x_i)
    working_set: np.ndarray     # номера примеров рабочего множества
    inactive_set: np.ndarray    # номера неактивных примеров


@dataclass
class FullTrainResult:
    """Результат обучения."""
    beta: np.ndarray              # (l+1,) веса (beta_i = y_i alpha_i) и bias
    bias: float
    n_iterations: int
    converged: bool               # |Δbeta|^2/|beta|^2 < eta
    stagnated: bool               # 300 итераций без улучшения
    last_ratio: float
    best_ratio: float
    best_beta: np.ndarray         # лучший снимок весов
    n_support_vectors: int
    working_set_sizes: List[int] = field(default_factory=list)


# =============================================================================
# Numba-функции
# =============================================================================

@njit(parallel=True, cache=True)
def inactive_influence(indptr, indices, data, quad, y, beta, working, inactive, kernel_type, gamma):
    """
    Вектор GIN: вклад неактивных примеров в решающую функцию рабочего множества.

        GIN[i] = y_i * sum_o beta_o K(i, o),   GIN[n] = sum_o beta_o
    """
    n_w = working.shape[0]
    n_in = inactive.shape[0]
    gin = np.zeros(n_w + 1, dtype=np.float64)
    for i in prange(n_w + 1):
        total = 0.0
        if i < n_w:
            wi = working[i]
            for o in range(n_in):
                b = beta[inactive[o]]
                if b != 0.0:
                    total += b * kernel_function(indptr, indices, data, quad, wi, inactive[o], kernel_type, gamma) * y[wi]
        else:
            for o in range(n_in):
                total += beta[inactive[o]]
        gin[i] = total
    return gin


# =============================================================================
# Рабочее множество
# =============================================================================

def ensure_both_classes(y: np.ndarray, working: np.ndarray, inactive: np.ndarray, max_working_size: int):
    """
    Добавляет в рабочее множество первый (в порядке обхода) неактивный пример
    отсутствующего класса.

    Если рабочее множество заполнено, последний его элемент уходит в неактивные.
    """
    if working.size == 0 or max_working_size < 2:
        return working, inactive
    for label in (1.0, -1.0):
        if np.any(y[working] == label):
            continue
        candidates = np.flatnonzero(y[inactive] == label)
        if candidates.size == 0:
            continue
        pick = inactive[candidates[0]]
        inactive = np.delete(inactive, candidates[0])
        if working.size >= max_working_size:
            inactive = np.append(inactive, working[-1])
            working = working[:-1]
        working = np.append(working, pick)
    return working, inactive


def initial_working_set(y: np.ndarray, max_working_size: int):
    """Каждый десятый пример (пока есть место) - в рабочее множество, остальные неактивны."""
    idx = np.arange(y.size)
    periodic = idx % INITIAL_SELECTION_PERIOD == 0
    working = idx[periodic][:max_working_size]
    mask = np.ones(y.size, dtype=bool)
    mask[working] = False
    return ensure_both_classes(y, working, idx[mask], max_working_size)


def select_working_set(beta: np.ndarray, e: np.ndarray, y: np.ndarray, C: float,
                       max_working_size: int, rng: np.random.Generator):
    """
    Классификация примеров по нарушению KKT и выбор рабочего множества.

    Шесть категорий (метка × {beta = 0, свободный, на границе C}): первый
    нарушитель каждой категории в порядке обхода попадает в рабочее множество.
    Остальные нарушители и все свободные примеры - кандидаты. Если кандидатов
    больше, чем свободного места, место заполняется случайной перестановкой,
    остаток откладывается в неактивные.

    Returns:
        (working, inactive): номера примеров
    """
    l = y.size
    y_beta = beta[:l] * y
    margin = e * y

    at_bound = y_beta == C
    at_zero = (beta[:l] == 0.0) & ~at_bound
    free = ~at_bound & ~at_zero

    violating = (
        (at_bound & (margin < -VIOLATION_THRESHOLD))
        | (at_zero & (margin > VIOLATION_THRESHOLD))
        | (free & (np.abs(margin) > VIOLATION_THRESHOLD))
    )

    # категория: 2 * {0: beta = 0, 1: свободный, 2: граница} + {0: y = -1, 1: y = +1}
    position = np.where(at_zero, 0, np.where(free, 1, 2))
    category = 2 * position + (y > 0)
    firsts = []
    for c in range(6):
        idx = np.flatnonzero(violating & (category == c))
        if idx.size > 0:
            firsts.append(idx[0])
    firsts = np.sort(np.asarray(firsts, dtype=np.int64))

    is_first = np.zeros(l, dtype=bool)
    is_first[firsts] = True
    candidates = np.flatnonzero((violating | free) & ~is_first)
    inactive = np.flatnonzero(~violating & ~free)

    working = firsts[:max_working_size]
    if firsts.size > max_working_size:
        inactive = np.concatenate([inactive, firsts[max_working_size:]])

    space = max_working_size - working.size
    if candidates.size < space:
        working = np.concatenate([working, candidates])
    else:
        perm = rng.permutation(candidates.size)
        working = np.concatenate([working, candidates[perm[:space]]])
        inactive = np.concatenate([inactive, candidates[perm[space:]]])

    return ensure_both_classes(y, working, inactive, max_working_size)


def project_box(beta: np.ndarray, y: np.ndarray, C: float) -> np.ndarray:
    """Проекция на 0 <= beta_i y_i <= C."""
    return np.clip(beta * y, 0.0, C) * y


# =============================================================================
# Внешний цикл
# =============================================================================

def train_full(dataset: Dataset, props: TrainingProperties,
               rng: Optional[np.random.Generator] = None) -> FullTrainResult:
    """
    Обучает SVM на всей выборке.

    Args:
        dataset: Обучающая выборка
        props: Гиперпараметры
        rng: Источник случайности для выбора рабочего множества
             (по умолчанию numpy.random.default_rng(0))

    Returns:
        FullTrainResult; beta[l] - bias
    """
    if rng is None:
        rng = np.random.default_rng(0)

    previous_threads = numba.get_num_threads()
    numba.set_num_threads(max(1, min(props.threads, numba.config.NUMBA_NUM_THREADS)))
    try:
        return _train_full(dataset, props, rng)
    finally:
        numba.set_num_threads(previous_threads)


def _train_full(dataset: Dataset, props: TrainingProperties, rng: np.random.Generator) -> FullTrainResult:
    l = dataset.l
    y = dataset.y
    C = float(props.C)
    kernel_type = int(props.kernel_type)
    gamma = float(props.gamma)
    indptr, indices, data = dataset.csr_arrays()
    quad = dataset.quadratic_value

    working, inactive = initial_working_set(y, props.max_working_size)
    state = TrainingState(
        beta=np.zeros(l + 1, dtype=np.float64),
        e=y.astype(np.float64).copy(),
        working_set=working,
        inactive_set=inactive,
    )

    best_ratio = NO_IMPROVEMENT
    best_beta = state.beta.copy()
    iters_since_best = 0
    ratio = np.inf
    converged = False
    iteration = 0
    working_set_sizes = []

    progress = tqdm(desc="IRWLS", unit="it", disable=not props.verbose)

    while not converged and iters_since_best < MAX_ITERS_SINCE_BEST:
        if props.max_iter is not None and iteration >= props.max_iter:
            break
        iteration += 1

        working = state.working_set
        inactive = state.inactive_set
        n_w = working.size
        working_set_sizes.append(int(n_w))

        # GIN
        if inactive.size > 0:
            gin = inactive_influence(indptr, indices, data, quad, y, state.beta,
                                     working, inactive, kernel_type, gamma)
        else:
            gin = np.zeros(n_w + 1, dtype=np.float64)

        # Поддатасет и IRWLS
        subset = dataset.subset(working)
        beta_sub = np.append(state.beta[working], state.beta[l])
        e_sub = state.e[working].copy()
        beta_tmp = sub_irwls(subset, props, gin, e_sub, beta_sub)

        beta_new = state.beta.copy()
        beta_new[working] = project_box(beta_tmp[:n_w], y[working], C)
        beta_new[l] = beta_tmp[n_w]

        # Ошибки всей выборки
        diff = beta_new - state.beta
        changed = working[diff[working] != 0.0]
        update_errors(indptr, indices, data, quad, state.e, changed,
                      np.ascontiguousarray(diff[changed]), float(diff[l]), kernel_type, gamma)

        ratio = relative_change(float(np.dot(diff, diff)), float(np.dot(state.beta, state.beta)))
        if ratio < props.eta:
            converged = True

        state.beta = beta_new

        if ratio < best_ratio:
            best_ratio = ratio
            iters_since_best = 0
            best_beta = beta_new.copy()
        else:
            iters_since_best += 1

        state.working_set, state.inactive_set = select_working_set(
            state.beta, state.e, y, C, props.max_working_size, rng
        )

        progress.set_postfix(ratio=f"{ratio:.3e}", ws=n_w)
        progress.update(1)

    progress.close()

    stagnated = not converged and iters_since_best >= MAX_ITERS_SINCE_BEST
    if stagnated:
        warnings.warn(
            f"IRWLS stopped after {MAX_ITERS_SINCE_BEST} iterations without improvement "
            f"(best relative change {best_ratio:.3e}, eta {props.eta})",
            RuntimeWarning,
        )
    elif not converged:
        warnings.warn(f"IRWLS reached max_iter={props.max_iter} before convergence", RuntimeWarning)

    beta = best_beta if props.result_policy == RESULT_BEST else state.beta
    n_sv = int(np.count_nonzero(beta[:l]))

    if props.verbose:
        print(f"IRWLS finished: {iteration} iterations, {n_sv} support vectors, converged={converged}")

    return FullTrainResult(
        beta=beta.copy(),
        bias=float(beta[l]),
        n_iterations=iteration,
        converged=converged,
        stagnated=stagnated,
        last_ratio=float(ratio),
        best_ratio=float(best_ratio),
        best_beta=best_beta,
        n_support_vectors=n_sv,
        working_set_sizes=working_set_sizes,
    )
