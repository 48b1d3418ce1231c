from __future__ import annotations

import logging
import sys

logger = logging.getLogger(__name__)
# Project strings and file names
program_name = 'SymRepeat'
program_command = program_name.lower()
program_help = f'{program_command} --help'
program_output = f'{program_name}Output'
default_axes_file = '{}_axes.tsv'
default_summary_file = '{}_summary.tsv'

logging_cfg = {
    'version': 1,
    'formatters': {
        'standard': {
            'class': 'logging.Formatter',
            'format': '\033[38;5;93m{name}\033[0;0m-\033[38;5;208m{levelname}\033[0;0m: {message}',
            'style': '{'
        },
        'file_standard': {
            'class': 'logging.Formatter',
            'format': '{name}-{levelname}: {message}',
            'style': '{'
        },
        'none': {
            'class': 'logging.Formatter',
            'format': '{message}',
            'style': '{'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'DEBUG',
            'formatter': 'standard',
            'stream': sys.stdout,
        },
        'main_file': {
            'class': 'logging.FileHandler',
            'level': 'DEBUG',
            'mode': 'a',
            'formatter': 'file_standard',
            'filename': f'{program_name.upper()}.log',
            'delay': True,
        },
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'loggers': {
        program_command: {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'null': {
            'level': 'WARNING',
            'handlers': ['null'],
            'propagate': False
        }
    },
    'root': {
        'level': 'INFO',
        'handlers': ['null'],
        # Can't include any stream or file handlers from above as the handlers get added to configuration twice
    },
}
default_logging_level = 20
