"""
Тесты параллельного решения окаймлённой системы IRWLS.
"""

import numpy as np
import pytest

from pirwls.linear_system import linear_system_threads, parallel_linear_system


def make_bordered_system(n=30, seed=0):
    """H = [[A, y], [y^T, 0]] с положительно определённым A."""
    rng = np.random.default_rng(seed)
    M = rng.normal(size=(n, n))
    A = M @ M.T + n * np.eye(n)
    y = np.where(rng.random(n) > 0.5, 1.0, -1.0)
    H = np.zeros((n + 1, n + 1))
    H[:n, :n] = A
    H[:n, n] = y
    H[n, :n] = y
    rhs = rng.normal(size=n + 1)
    return H, rhs


def test_matches_numpy_solve():
    print("\n" + "=" * 60)
    print("Test: bordered system vs numpy.linalg.solve")
    print("=" * 60)
    for n_threads in (1, 2, 4):
        H, rhs = make_bordered_system(seed=n_threads)
        x = parallel_linear_system(H, rhs, n_threads)
        x_ref = np.linalg.solve(H, rhs)
        err = np.max(np.abs(x - x_ref))
        print(f"  threads={n_threads}: max error {err:.2e}")
        assert err < 1e-8, f"Solution differs from numpy with {n_threads} threads: {err}"


def test_single_unknown():
    H = np.array([[2.0, 1.0], [1.0, 0.0]])
    rhs = np.array([3.0, 0.5])
    x = parallel_linear_system(H, rhs)
    # 2 x0 + x1 = 3, x0 = 0.5
    assert np.allclose(x, [0.5, 2.0])


def test_input_not_modified():
    H, rhs = make_bordered_system(n=8)
    H_copy, rhs_copy = H.copy(), rhs.copy()
    parallel_linear_system(H, rhs, 2)
    assert np.array_equal(H, H_copy), "H must not be modified"
    assert np.array_equal(rhs, rhs_copy), "rhs must not be modified"


def test_zero_schur_complement_raises():
    with pytest.raises(np.linalg.LinAlgError):
        parallel_linear_system(np.zeros((1, 1)), np.ones(1))


def test_thread_count_rule():
    assert linear_system_threads(1, 100) == 1
    assert linear_system_threads(4, 100) == 4
    assert linear_system_threads(6, 100) == 4
    assert linear_system_threads(8, 3) == 2
    assert linear_system_threads(8, 1) == 1
    assert linear_system_threads(8, 0) == 1
    assert linear_system_threads(16, 16) == 16


def test_indefinite_leading_block_raises():
    H = np.array([
        [1.0, 2.0, 1.0],
        [2.0, 1.0, -1.0],
        [1.0, -1.0, 0.0],
    ])
    with pytest.raises(np.linalg.LinAlgError):
        parallel_linear_system(H, np.ones(3))


def test_small_ridge_on_rank_deficient_kernel():
    """Повторяющиеся примеры: K вырождена, диагональ 1/a = 1e-4 сохраняет решение."""
    z = np.array([1.0, 1.0, 2.0, 2.0])
    y = np.array([1.0, -1.0, 1.0, -1.0])
    n = z.size
    H = np.zeros((n + 1, n + 1))
    H[:n, :n] = np.outer(z, z) + 1e-4 * np.eye(n)
    H[:n, n] = y
    H[n, :n] = y
    rhs = np.append(np.ones(n), 0.0)
    x = parallel_linear_system(H, rhs)
    assert np.allclose(H @ x, rhs, atol=1e-6), "Residual too large"
