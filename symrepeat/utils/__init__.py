from __future__ import annotations

import logging
import os
import threading
import time
from functools import wraps
from logging import Logger, DEBUG, INFO, WARNING, ERROR, CRITICAL, getLogger, root as root_logger
from typing import Any, Callable, Iterable, Sequence, Literal, Type, get_args

import psutil


# Globals
logger = logging.getLogger(__name__)


##########
# ERRORS
##########

def handle_errors(errors: tuple[Type[Exception], ...] = (Exception,)) -> Any:
    """Decorator to wrap a function with try: ... except errors:

    Args:
        errors: A tuple of exceptions to monitor, even if single exception
    Returns:
        Function return upon proper execution, else the Exception if one was raised
    """
    def wrapper(func: Callable) -> Any:
        @wraps(func)
        def wrapped(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except errors as error:
                return error
        return wrapped
    return wrapper


class SymRepeatException(Exception):
    pass


class InputError(SymRepeatException):
    pass


class OrderDetectionFailed(SymRepeatException):
    pass


class RefinerFailed(SymRepeatException):
    pass


class DegenerateTransform(SymRepeatException):
    pass


class AnalysisCancelled(SymRepeatException):
    pass


class CancellationToken:
    """Signal shared between an analysis and its caller to stop work at the next iteration boundary or Monte Carlo
    move. Safe to set from any thread
    """
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, where: str = None):
        """Raise AnalysisCancelled if cancel() was called

        Args:
            where: A description of the work that was interrupted for the raised message
        Raises:
            AnalysisCancelled
        """
        if self._event.is_set():
            raise AnalysisCancelled(f'Analysis was cancelled{f" during {where}" if where else ""}')


def check_cancelled(cancel: CancellationToken | None, where: str = None):
    """Convenience for optional tokens, see CancellationToken.check()"""
    if cancel is not None:
        cancel.check(where)


#####################
# Runtime Utilities
#####################

def timestamp() -> str:
    """Return the date/time formatted as YR-MO-DA-HRMNSC. Ex: 2022-Jan-01-245959"""
    return time.strftime('%y-%m-%d-%H%M%S')


starttime = timestamp()
logging_level_literal = Literal[
    1, 2, 3, 4, 5, 10, 20, 30, 40, 50,
    '1', '2', '3', '4', '5', '10', '20', '30', '40', '50',
    'debug', 'info', 'warning', 'error', 'critical', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL',
]
log_level_keys: tuple[str | int, ...] = get_args(logging_level_literal)
logging_levels = [DEBUG, INFO, WARNING, ERROR, CRITICAL]
log_level = dict(zip(log_level_keys, logging_levels * 6))
"""log_level = {
1: DEBUG, 2: INFO, 3: WARNING, 4: ERROR, 5: CRITICAL,
10: DEBUG, 20: INFO, 30: WARNING, 40: ERROR, 50: CRITICAL,
'debug': DEBUG, 'info': INFO, 'warning': WARNING, 'error': ERROR, 'critical': CRITICAL,
'DEBUG': DEBUG, 'INFO': INFO, 'WARNING': WARNING, 'ERROR': ERROR, 'CRITICAL': CRITICAL}
"""


def set_logging_to_level(level: logging_level_literal = None, handler_level: logging_level_literal = None):
    """For each Logger in current run time, set the Logger or the Logger.handlers level to level

    level is debug by default if no arguments are specified

    Args:
        level: The level to set all loggers to
        handler_level: The level to set all logger handlers to
    """
    if level is not None:
        _level = log_level[level]
        set_level_func = Logger.setLevel
    elif handler_level is not None:
        _level = log_level[handler_level]

        def set_level_func(logger_: Logger, level_: int):
            for handler in logger_.handlers:
                handler.setLevel(level_)
    else:
        _level = log_level[1]
        set_level_func = Logger.setLevel

    for logger_name in list(root_logger.manager.loggerDict):
        _logger = getLogger(logger_name)
        set_level_func(_logger, _level)


def pretty_format_table(data: Iterable, justification: Sequence = None, header: Sequence = None,
                        header_justification: Sequence = None) -> list[str]:
    """Present a table in readable format by sizing and justifying columns in a nested data structure
    i.e. [row1[column1, column2, ...], row2[], ...]

    Args:
        data: Where each successive element is a row and each row's sub-elements are unique columns.
            The typical data structure would be [[i, j, k], [yes, 4, 0.1], [no, 5, 0.3]]
        justification: Iterable with elements 'l'/'left', 'r'/'right', or 'c'/'center' as justification values
        header: The names of values to place in the table header
        header_justification: Iterable with elements 'l'/'left', 'r'/'right', or 'c'/'center' as justification values
    Returns:
        The formatted data with each input row justified as an individual element in the list
    """
    justification_d = {'l': str.ljust, 'r': str.rjust, 'c': str.center,
                       'left': str.ljust, 'right': str.rjust, 'center': str.center}
    # Incase data is passed as a dictionary, we should turn into an iterator of key, value
    if isinstance(data, dict):
        data = data.items()
    data = [[column for column in row] for row in data]
    if header is not None:
        data.insert(0, list(header))

    column_widths = get_table_column_widths(data)
    number_columns = len(column_widths)
    if not justification:
        justifications = [str.ljust for _ in range(number_columns)]
    elif len(justification) == number_columns:
        justifications = [justification_d.get(key.lower(), str.ljust) for key in justification]
    else:
        raise RuntimeError(f"The justification length ({len(justification)}) doesn't match the "
                           f"number of columns ({number_columns})")
    if header is not None:
        if len(header) != number_columns:
            raise RuntimeError(f"The header length ({len(header)}) doesn't match the "
                               f"number of columns ({number_columns})")
        if header_justification is None:
            header_justification = [str.center for _ in range(number_columns)]
        else:
            header_justification = [justification_d.get(key.lower(), str.center) for key in header_justification]

    return [' '.join(header_justification[idx](column, column_widths[idx]) if row_idx == 0 and header is not None
                     else justifications[idx](column, column_widths[idx])
                     for idx, column in enumerate(map(str, row_entry)))
            for row_idx, row_entry in enumerate(data)]


def get_table_column_widths(data: Iterable) -> tuple[int]:
    """Find the widths of each column in a nested data structure

    Args:
        data: Where each successive element is a row and each row's sub-elements are unique columns
    Returns:
        A tuple containing the width of each column from the input data
    """
    return tuple(max(map(len, map(str, column))) for column in zip(*data))


def calculate_mp_cores(cores: int = None, jobs: int = None) -> int:
    """Calculate the number of worker threads/processes to use for a specific application

    Default options specify to leave at least one CPU available for the machine. If a SLURM environment is used,
    the number of cores will reflect the environmental variable SLURM_CPUS_PER_TASK
    Args:
        cores: How many cpu's to use
        jobs: How many jobs to use
    Returns:
        The number of cores to use taking the minimum of cores, jobs, and max cpus available
    """
    allocated_cpus = os.environ.get('SLURM_CPUS_PER_TASK')
    if allocated_cpus:  # we are in a SLURM environment and should follow allocation
        max_cpus_to_use = int(allocated_cpus)
    else:  # logical=False only uses physical cpus, not logical threads
        max_cpus_to_use = (psutil.cpu_count(logical=False) or 1) - 1  # leave CPU available for computer

    infinity = float('inf')
    return int(max(1, min((cores or max_cpus_to_use or 1), (jobs or infinity))))
