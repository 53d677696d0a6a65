from .config import (
    LINEAR_KERNEL,
    RBF_KERNEL,
    CSV_FORMAT,
    LIBSVM_FORMAT,
    RESULT_LAST,
    RESULT_BEST,
    TrainingProperties,
)

from .dataset import (
    Dataset,
    load_dataset,
    read_csv_file,
    read_libsvm_file,
)

from .kernels import kernel_function, kernel_matrix
from .linear_system import parallel_linear_system
from .irwls_solver import sub_irwls
from .full_train import FullTrainResult, train_full

from .model import (
    SVMModel,
    build_model,
    decision_function,
    predict,
    save_model,
    load_model,
)

__all__ = [
    # Config
    "LINEAR_KERNEL",
    "RBF_KERNEL",
    "CSV_FORMAT",
    "LIBSVM_FORMAT",
    "RESULT_LAST",
    "RESULT_BEST",
    "TrainingProperties",
    # Dataset
    "Dataset",
    "load_dataset",
    "read_csv_file",
    "read_libsvm_file",
    # Training
    "kernel_function",
    "kernel_matrix",
    "parallel_linear_system",
    "sub_irwls",
    "FullTrainResult",
    "train_full",
    # Model
    "SVMModel",
    "build_model",
    "decision_function",
    "predict",
    "save_model",
    "load_model",
]
