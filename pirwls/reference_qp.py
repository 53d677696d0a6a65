"""
Точное решение двойственной задачи SVM через QP-solver (cvxopt).

Используется для проверки результата IRWLS на небольших выборках:

    min_α 1/2 α^T Q α - 1^T α,   Q_ij = y_i y_j K(x_i, x_j)
    s.t.  0 <= α_i <= C,  y^T α = 0

Память O(l^2): только для малых датасетов.
"""

import warnings

import numpy as np
from cvxopt import matrix, solvers, spmatrix

from .config import TrainingProperties
from .dataset import Dataset
from .kernels import kernel_matrix

# Отключаем вывод cvxopt
solvers.options["show_progress"] = False

# Порог опорного вектора для alpha из внутренней точки
SV_THRESHOLD = 1e-6


def solve_dual_qp(dataset: Dataset, props: TrainingProperties) -> np.ndarray:
    """
    Решает полную двойственную задачу.

    Returns:
        beta: (l+1,) веса beta_i = y_i alpha_i (в той же форме, что и train_full), beta[l] - bias
    """
    l = dataset.l
    y = dataset.y
    C = float(props.C)

    # ----------------------------------------------------------------------
    # P = YY * K
    # ----------------------------------------------------------------------
    K = kernel_matrix(dataset, dataset, props.kernel_type, props.gamma)
    P = np.outer(y, y) * K
    P = P + 1e-8 * np.eye(l)  # Численная стабильность
    P_cvx = matrix(P)
    q_cvx = matrix(-np.ones(l))

    # ----------------------------------------------------------------------
    # Box constraints: -α_i <= 0, α_i <= C
    # ----------------------------------------------------------------------
    values = [-1.0] * l + [1.0] * l
    rows = list(range(2 * l))
    cols = list(range(l)) * 2
    G_cvx = spmatrix(values, rows, cols, (2 * l, l))
    h_cvx = matrix(np.hstack([np.zeros(l), np.full(l, C)]))

    # ----------------------------------------------------------------------
    # y^T α = 0
    # ----------------------------------------------------------------------
    A_eq = matrix(y.reshape(1, -1))
    b_eq = matrix(np.zeros(1))

    solution = solvers.qp(P_cvx, q_cvx, G_cvx, h_cvx, A_eq, b_eq)
    if solution["status"] != "optimal":
        warnings.warn(f"QP solver status = {solution['status']}")

    alpha = np.clip(np.array(solution["x"]).flatten(), 0.0, C)
    alpha[alpha < SV_THRESHOLD] = 0.0

    # ----------------------------------------------------------------------
    # bias: усреднение y_i - sum_j α_j y_j K_ij по свободным опорным векторам
    # ----------------------------------------------------------------------
    f_no_bias = K @ (alpha * y)
    free = (alpha > SV_THRESHOLD) & (alpha < C - SV_THRESHOLD)
    if np.any(free):
        bias = float(np.mean(y[free] - f_no_bias[free]))
    else:
        sv = alpha > SV_THRESHOLD
        bias = float(np.mean(y[sv] - f_no_bias[sv])) if np.any(sv) else 0.0

    beta = np.empty(l + 1, dtype=np.float64)
    beta[:l] = alpha * y
    beta[l] = bias
    return beta
