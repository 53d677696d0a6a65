"""
Параметры обучения SVM методом IRWLS и фиксированные константы алгоритма.

Константы не настраиваются пользователем: это пороги самого алгоритма
(Pérez-Cruz et al., 2001; Díaz-Morales & Navia-Vázquez, 2016).
"""

from dataclasses import dataclass
from typing import Optional

# Типы ядра
LINEAR_KERNEL = 0
RBF_KERNEL = 1

# Форматы входного файла
CSV_FORMAT = 0
LIBSVM_FORMAT = 1

# Политика результата внешнего цикла
RESULT_LAST = "last"
RESULT_BEST = "best"

# --- Внешний цикл ---
VIOLATION_THRESHOLD = 0.001      # порог нарушения KKT
MAX_ITERS_SINCE_BEST = 300       # защита от стагнации
INITIAL_SELECTION_PERIOD = 10    # в начальное рабочее множество идёт каждый 10-й пример
NO_IMPROVEMENT = 1e20            # начальное значение лучшего отношения

# --- Внутренний IRWLS ---
INNER_MIN_ITER = 5
INNER_MAX_ITER = 1000
INNER_MAX_ITERS_SINCE_BEST = 5
INNER_RELATIVE_TOL = 1e-6
INNER_NO_IMPROVEMENT = 1e9
BOUND_BAND_LOW = 0.99
BOUND_BAND_HIGH = 1.01
NEAR_ZERO_ERROR = 1e-4
MAX_WEIGHT_FACTOR = 1e4          # a_i <= C * 1e4


@dataclass(frozen=True)
class TrainingProperties:
    """
    Гиперпараметры обучения.

    Args:
        C: Стоимость ошибки (box constraint 0 <= beta_i*y_i <= C)
        kernel_type: 0 - линейное ядро, 1 - RBF
        gamma: Параметр RBF ядра exp(-gamma*|u-v|^2)
        threads: Количество потоков
        max_working_size: Максимальный размер рабочего множества
        eta: Критерий остановки внешнего цикла
        file_format: 0 - CSV, 1 - libsvm
        separator: Разделитель CSV
        verbose: Выводить информацию о процессе обучения
        max_iter: Ограничение числа внешних итераций (None - без ограничения)
        result_policy: "last" - последняя итерация, "best" - лучший снимок
    """
    C: float = 1.0
    kernel_type: int = RBF_KERNEL
    gamma: float = 1.0
    threads: int = 1
    max_working_size: int = 500
    eta: float = 0.001
    file_format: int = LIBSVM_FORMAT
    separator: str = ","
    verbose: bool = False
    max_iter: Optional[int] = None
    result_policy: str = RESULT_LAST

    def __post_init__(self):
        if not self.C > 0:
            raise ValueError(f"C must be > 0, got {self.C}")
        if self.kernel_type not in (LINEAR_KERNEL, RBF_KERNEL):
            raise ValueError(f"Unknown kernel type {self.kernel_type}, expected 0 (linear) or 1 (rbf)")
        if self.kernel_type == RBF_KERNEL and not self.gamma > 0:
            raise ValueError(f"gamma must be > 0 for the rbf kernel, got {self.gamma}")
        if self.threads < 1:
            raise ValueError(f"threads must be >= 1, got {self.threads}")
        if self.max_working_size < 1:
            raise ValueError(f"max_working_size must be >= 1, got {self.max_working_size}")
        if not self.eta > 0:
            raise ValueError(f"eta must be > 0, got {self.eta}")
        if self.file_format not in (CSV_FORMAT, LIBSVM_FORMAT):
            raise ValueError(f"Unknown file format {self.file_format}, expected 0 (csv) or 1 (libsvm)")
        if self.max_iter is not None and self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.result_policy not in (RESULT_LAST, RESULT_BEST):
            raise ValueError(f"result_policy must be '{RESULT_LAST}' or '{RESULT_BEST}', got {self.result_policy!r}")

    @property
    def kernel_name(self) -> str:
        return "linear" if self.kernel_type == LINEAR_KERNEL else "rbf"
