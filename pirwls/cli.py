"""
Командная строка: full-train и full-predict.

    full-train [options] training_set_file model_file
    full-predict [options] dataset_file model_file output_file

Коды выхода:
    0 - успех
    2 - входной файл не найден
    3 - неизвестный параметр
    4 - некорректные или недостаточные аргументы
"""

import argparse
import os
import sys
import time

import numba
import numpy as np

from .config import RESULT_BEST, RESULT_LAST, TrainingProperties
from .dataset import load_dataset
from .full_train import train_full
from .model import build_model, decision_function, load_model, save_model

EXIT_OK = 0
EXIT_INPUT_NOT_FOUND = 2
EXIT_UNKNOWN_OPTION = 3
EXIT_BAD_ARGUMENTS = 4


class UsageError(Exception):
    """Ошибка командной строки с кодом выхода."""

    def __init__(self, message: str, exit_code: int = EXIT_BAD_ARGUMENTS):
        super().__init__(message)
        self.exit_code = exit_code


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser, который не завершает процесс при ошибке."""

    def error(self, message):
        raise UsageError(message)


def _parse(parser: argparse.ArgumentParser, argv):
    args, extras = parser.parse_known_args(argv)
    unknown = [arg for arg in extras if arg.startswith("-")]
    if unknown:
        raise UsageError(f"Unknown parameter {unknown[0]}", EXIT_UNKNOWN_OPTION)
    if extras:
        raise UsageError(f"Unexpected arguments: {' '.join(extras)}")
    return args


def _report_usage(prog: str, parser: argparse.ArgumentParser, error: UsageError) -> int:
    print(f"{prog}: {error}", file=sys.stderr)
    parser.print_help(sys.stderr)
    return error.exit_code


# =============================================================================
# full-train
# =============================================================================

def build_train_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="full-train",
        description="Train a full SVM on the given training set with the parallel IRWLS "
                    "procedure and store the model for future predictions.",
    )
    parser.add_argument("-k", dest="kernel_type", type=int, default=1, choices=[0, 1],
                        help="kernel type: 0 -- linear u'*v, 1 -- radial basis exp(-gamma*|u-v|^2) (default 1)")
    parser.add_argument("-g", dest="gamma", type=float, default=1.0,
                        help="gamma in the radial basis kernel function (default 1)")
    parser.add_argument("-c", dest="cost", type=float, default=1.0, help="SVM cost (default 1)")
    parser.add_argument("-t", dest="threads", type=int, default=1, help="number of threads (default 1)")
    parser.add_argument("-w", dest="working_size", type=int, default=500,
                        help="working set size: size of the least squares problem in every iteration (default 500)")
    parser.add_argument("-e", dest="eta", type=float, default=0.001, help="stop criteria (default 0.001)")
    parser.add_argument("-f", dest="file_format", type=int, default=1, choices=[0, 1],
                        help="file format: 0 -- CSV, 1 -- libsvm (default 1)")
    parser.add_argument("-p", dest="separator", default=",",
                        help="csv separator character (default \",\")")
    parser.add_argument("-v", dest="verbose", type=int, default=1, choices=[0, 1],
                        help="verbose: 0 -- no screen messages, 1 -- screen messages (default 1)")
    parser.add_argument("-r", dest="seed", type=int, default=0,
                        help="seed of the working set random selection (default 0)")
    parser.add_argument("-b", dest="result_policy", default=RESULT_LAST, choices=[RESULT_LAST, RESULT_BEST],
                        help="returned weights: last iterate or best snapshot (default last)")
    parser.add_argument("training_set_file", help="training set file")
    parser.add_argument("model_file", help="output model file")
    return parser


def train_main(argv=None) -> int:
    """Точка входа full-train."""
    parser = build_train_parser()
    try:
        args = _parse(parser, argv)
        props = TrainingProperties(
            C=args.cost,
            kernel_type=args.kernel_type,
            gamma=args.gamma,
            threads=args.threads,
            max_working_size=args.working_size,
            eta=args.eta,
            file_format=args.file_format,
            separator=args.separator,
            verbose=bool(args.verbose),
            result_policy=args.result_policy,
        )
    except ValueError as e:
        return _report_usage("full-train", parser, UsageError(str(e)))
    except UsageError as e:
        return _report_usage("full-train", parser, e)

    if props.verbose:
        print("\nRunning with parameters:")
        print("------------------------")
        print(f"Training set: {args.training_set_file}")
        print(f"The model will be saved in: {args.model_file}")
        print(f"Cost c = {props.C:f}")
        print(f"Working set size = {props.max_working_size}")
        print(f"Stop criteria = {props.eta:f}")
        if props.kernel_type == 0:
            print("Using linear kernel")
        else:
            print(f"Using gaussian kernel with gamma = {props.gamma:f}")
        print("------------------------\n")

    if not os.path.isfile(args.training_set_file):
        print(f"Input file with the training set not found: {args.training_set_file}", file=sys.stderr)
        return EXIT_INPUT_NOT_FOUND

    if props.verbose:
        print(f"Reading dataset from file: {args.training_set_file}")
    dataset = load_dataset(args.training_set_file, props.file_format, props.separator)
    if props.verbose:
        print(f"Dataset Loaded\n\nTraining samples: {dataset.l}\nNumber of features: {dataset.maxdim}\n")
        print("Running IRWLS")

    start = time.time()
    result = train_full(dataset, props, rng=np.random.default_rng(args.seed))
    elapsed_ms = int((time.time() - start) * 1000)
    if props.verbose:
        print(f"\nWeights calculated in {elapsed_ms} miliseconds\n")

    model = build_model(props, dataset, result.beta)
    if props.verbose:
        print(f"Saving model in file: {args.model_file}\n")
    save_model(model, args.model_file)
    return EXIT_OK


# =============================================================================
# full-predict
# =============================================================================

def build_predict_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="full-predict",
        description="Classify a dataset with a model trained by full-train.",
    )
    parser.add_argument("-t", dest="threads", type=int, default=1, help="number of threads (default 1)")
    parser.add_argument("-f", dest="file_format", type=int, default=1, choices=[0, 1],
                        help="file format: 0 -- CSV, 1 -- libsvm (default 1)")
    parser.add_argument("-p", dest="separator", default=",",
                        help="csv separator character (default \",\")")
    parser.add_argument("-l", dest="labeled", type=int, default=0, choices=[0, 1],
                        help="1 -- the dataset is labeled and the accuracy is reported (default 0)")
    parser.add_argument("-s", dest="soft", type=int, default=0, choices=[0, 1],
                        help="1 -- write decision values instead of class labels (default 0)")
    parser.add_argument("-v", dest="verbose", type=int, default=1, choices=[0, 1],
                        help="verbose: 0 -- no screen messages, 1 -- screen messages (default 1)")
    parser.add_argument("dataset_file", help="dataset to classify")
    parser.add_argument("model_file", help="model file created by full-train")
    parser.add_argument("output_file", help="output file with one prediction per line")
    return parser


def predict_main(argv=None) -> int:
    """Точка входа full-predict."""
    parser = build_predict_parser()
    try:
        args = _parse(parser, argv)
        if args.threads < 1:
            raise UsageError(f"threads must be >= 1, got {args.threads}")
    except UsageError as e:
        return _report_usage("full-predict", parser, e)

    for path in (args.dataset_file, args.model_file):
        if not os.path.isfile(path):
            print(f"Input file not found: {path}", file=sys.stderr)
            return EXIT_INPUT_NOT_FOUND

    # libsvm всегда содержит метки; для CSV без меток все столбцы - признаки
    labeled = bool(args.labeled) or args.file_format == 1
    dataset = load_dataset(args.dataset_file, args.file_format, args.separator, labeled=labeled)
    model = load_model(args.model_file)
    if args.verbose:
        print(f"Dataset Loaded: {dataset.l} samples, {dataset.maxdim} features")
        print(f"Model Loaded: {model.n_svs} support vectors")

    previous_threads = numba.get_num_threads()
    numba.set_num_threads(max(1, min(args.threads, numba.config.NUMBA_NUM_THREADS)))
    try:
        values = decision_function(model, dataset)
    finally:
        numba.set_num_threads(previous_threads)

    labels = np.where(values >= 0.0, 1.0, -1.0)
    if args.soft:
        np.savetxt(args.output_file, values, fmt="%.10g")
    else:
        np.savetxt(args.output_file, labels, fmt="%d")

    if args.labeled and args.verbose:
        accuracy = float(np.mean(labels == dataset.y))
        print(f"Accuracy: {accuracy:.4f}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(train_main())
