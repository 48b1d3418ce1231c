from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from typing import Any

from symrepeat.resources import config
from symrepeat.utils import log_level as log_levels, logging_levels
from symrepeat.utils.path import default_logging_level, program_command, program_help, program_name, program_output
from symrepeat.utils.symmetry import AUTO, symmetry_types

# Globals
logger = logging.getLogger(__name__)
# Flag names
coords_file = 'coords_file'
max_symm_order = 'max_symm_order'
symmetry_type = 'symmetry_type'
order_detector_method = 'order_detector_method'
refine_method = 'refine_method'
symmetry_threshold = 'symmetry_threshold'
optimization = 'optimization'
seed = 'seed'
multiple_axes = 'multiple_axes'
user_order = 'user_order'
win_size = 'win_size'
minimum_metric_change = 'minimum_metric_change'
distance_cutoff = 'distance_cutoff'
optimization_steps = 'optimization_steps'
optimization_runs = 'optimization_runs'
cores = 'cores'
output_directory = 'output_directory'
log_level = 'log_level'
debug = 'debug'
# Set up namespaces for different categories of flags
symmetry_namespace = {
    max_symm_order, symmetry_type, order_detector_method, refine_method, symmetry_threshold, optimization, seed,
    multiple_axes, user_order, win_size, minimum_metric_change, distance_cutoff, optimization_steps,
    optimization_runs, cores
}
namespaces = dict(
    symmetry=symmetry_namespace,
)
argparse_flag_delimiter = '-'


def format_for_cmdline(string) -> str:
    """Format a flag for the command line

    Args:
        string: The string to format as a commandline flag

    Returns:
        The string formatted by replacing any underscores '_' with a dash '-'
    """
    return string.replace('_', argparse_flag_delimiter)


def format_from_cmdline(string) -> str:
    """Format a string from the command line format to a program acceptable string

    Args:
        string: The string to format as a python string

    Returns:
        The flag formatted by replacing any dash '-' with an underscore '_'
    """
    return string.replace(argparse_flag_delimiter, '_')


class FlagStr(str):
    """Flag instances are strings which represent possible input parameters to the program with additional formatting
    for program runtime to properly reflect underscore and dashed versions
    """
    flag_character = argparse_flag_delimiter

    def __new__(cls, string: str):
        return super().__new__(cls, format_for_cmdline(string))

    @property
    def _(self) -> str:
        """The flag formatted by replacing any dash '-' with an underscore '_'"""
        return format_from_cmdline(self)

    @property
    def long(self) -> str:
        """The flag formatted for the command line with a leading '--'"""
        return f'{self.flag_character}{self.flag_character}{self}'


coords_file = FlagStr(coords_file)
max_symm_order = FlagStr(max_symm_order)
symmetry_type = FlagStr(symmetry_type)
order_detector_method = FlagStr(order_detector_method)
refine_method = FlagStr(refine_method)
symmetry_threshold = FlagStr(symmetry_threshold)
optimization = FlagStr(optimization)
seed = FlagStr(seed)
multiple_axes = FlagStr(multiple_axes)
user_order = FlagStr(user_order)
win_size = FlagStr(win_size)
minimum_metric_change = FlagStr(minimum_metric_change)
distance_cutoff = FlagStr(distance_cutoff)
optimization_steps = FlagStr(optimization_steps)
optimization_runs = FlagStr(optimization_runs)
cores = FlagStr(cores)
output_directory = FlagStr(output_directory)
log_level = FlagStr(log_level)
debug = FlagStr(debug)


def positive_int(value: str) -> int:
    """Convert integer flags ensuring the value is greater than 0"""
    value = int(value)
    if value < 1:
        raise argparse.ArgumentTypeError(f'{value} must be a positive integer')
    return value


def fraction(value: str) -> float:
    """Convert float flags ensuring the value is within [0, 1]"""
    value = float(value)
    if not 0. <= value <= 1.:
        raise argparse.ArgumentTypeError(f'{value} must be in the range [0, 1]')
    return value


class Formatter(argparse.RawTextHelpFormatter, argparse.RawDescriptionHelpFormatter, argparse.HelpFormatter):

    def _format_action_invocation(self, action):
        if not action.option_strings:
            metavar, = self._metavar_formatter(action, action.dest)(1)
            return metavar
        else:
            parts = []
            # if the Optional doesn't take a value, format is:
            #    -s, --long
            if action.nargs == 0:
                parts.extend(action.option_strings)
            # if the Optional takes a value, format is:
            #    -s, --long ARGS
            else:
                default = action.dest.upper()
                args_string = self._format_args(action, default)
                for option_string in action.option_strings:
                    parts.append(f'{option_string}')
                parts[-1] += f' {args_string.upper()}'
            return ', '.join(parts)


boolean_positional_prevent_msg = 'Use --no-{} to prevent'.format
"""Use this message in all help keyword arguments using argparse.BooleanOptionalAction with default=True to specify the
 --no- prefix when the argument should be False
"""
symmetry_title = 'Symmetry Arguments'
optimization_title = 'Optimization Arguments'
input_title = 'Input Arguments'
output_title = 'Output Arguments'
options_title = 'Options Arguments'

# Input arguments
coords_file_args = (coords_file._,)
coords_file_kwargs = dict(nargs='+', metavar='COORDS_FILE',
                          help='File(s) with one residue position per line as three whitespace separated\n'
                               'x, y, z values, such as the alpha carbon of each residue')
# Symmetry arguments
max_symm_order_args = ('-o', max_symm_order.long)
max_symm_order_kwargs = dict(type=positive_int, default=config.MAX_SYMM_ORDER, metavar='INT',
                             help='The largest symmetry order to search for. Also limits the number of\n'
                                  'self-alignment iterations\nDefault=%(default)s')
symmetry_type_args = ('-t', symmetry_type.long)
symmetry_type_kwargs = dict(type=str.lower, default=AUTO, choices=symmetry_types, metavar='',
                            help='The arrangement of the repeats. closed repeats form a cycle, open repeats\n'
                                 "(helical, translational) don't. auto infers open when the first\n"
                                 'self-alignment is a single block\nChoices=%(choices)s\nDefault=%(default)s')
order_detector_method_args = (order_detector_method.long,)
order_detector_method_kwargs = dict(type=str.lower, default=config.SEQUENCE_FUNCTION, choices=config.order_detectors,
                                    metavar='',
                                    help='How to determine the symmetry order of a closed self-alignment\n'
                                         f'{config.USER_INPUT} requires {user_order.long}'
                                         '\nChoices=%(choices)s\nDefault=%(default)s')
refine_method_args = ('-r', refine_method.long)
refine_method_kwargs = dict(type=str.lower, default=config.SINGLE, choices=config.refine_methods, metavar='',
                            help='How to resolve the self-alignment(s) into a consistent set of repeats\n'
                                 'Choices=%(choices)s\nDefault=%(default)s')
symmetry_threshold_args = (symmetry_threshold.long,)
symmetry_threshold_kwargs = dict(type=fraction, default=config.SYMMETRY_THRESHOLD, metavar='FLOAT',
                                 help='The TM-score required to continue self-alignment iterations and to\n'
                                      'declare a result significant\nDefault=%(default)s')
multiple_axes_args = (multiple_axes.long,)
multiple_axes_kwargs = dict(action=argparse.BooleanOptionalAction, default=True,
                            help='Whether to search the first repeat for nested symmetry axes\n'
                                 f'{boolean_positional_prevent_msg(multiple_axes)}')
user_order_args = (user_order.long,)
user_order_kwargs = dict(type=int, default=0, metavar='INT',
                         help=f'The symmetry order to use with {order_detector_method.long} {config.USER_INPUT}\n'
                              'or to enforce during open refinement. 0 is unset\nDefault=%(default)s')
win_size_args = ('-w', win_size.long)
win_size_kwargs = dict(type=positive_int, default=config.WINDOW_SIZE, metavar='INT',
                       help='The fragment length used to compare residues and the width of the\n'
                            'region blanked around previous alignments\nDefault=%(default)s')
minimum_metric_change_args = (minimum_metric_change.long,)
minimum_metric_change_kwargs = dict(type=fraction, default=config.MINIMUM_METRIC_CHANGE, metavar='FLOAT',
                                    help='The fraction of the first order periodicity metric that a higher order\n'
                                         'must fall below to be selected\nDefault=%(default)s')
distance_cutoff_args = (distance_cutoff.long,)
distance_cutoff_kwargs = dict(type=float, default=config.DISTANCE_CUTOFF, metavar='FLOAT',
                              help='The mean fragment distance difference (Angstroms) at which two\n'
                                   'fragments stop scoring as similar\nDefault=%(default)s')
# Optimization arguments
optimization_args = (optimization.long,)
optimization_kwargs = dict(action=argparse.BooleanOptionalAction, default=True,
                           help='Whether to optimize the repeat boundaries with Monte Carlo sampling\n'
                                f'{boolean_positional_prevent_msg(optimization)}')
seed_args = (seed.long,)
seed_kwargs = dict(type=int, default=0, metavar='INT',
                   help='The random seed of the first optimization run. Run n uses seed+n\nDefault=%(default)s')
optimization_steps_args = (optimization_steps.long,)
optimization_steps_kwargs = dict(type=positive_int, default=config.MC_STEPS, metavar='INT',
                                 help='The number of Monte Carlo moves in each optimization run\nDefault=%(default)s')
optimization_runs_args = (optimization_runs.long,)
optimization_runs_kwargs = dict(type=positive_int, default=config.MC_RUNS, metavar='INT',
                                help='The number of independent optimization runs. The best is kept\n'
                                     'Default=%(default)s')
cores_args = ('-C', cores.long)
cores_kwargs = dict(type=positive_int, metavar='INT',
                    help='The number of workers for optimization runs. Default uses available CPUs')
# Output arguments
output_directory_args = ('-Od', output_directory.long)
output_directory_kwargs = dict(type=str, metavar='DIRECTORY',
                               help='Where to write the axes and summary tables\n'
                                    f'Default=./{program_output}')
# Options arguments
log_level_args = (log_level.long,)
log_level_kwargs = dict(type=log_levels.get, default=default_logging_level, choices=logging_levels, metavar='',
                        help='What level of log messages should be displayed to stdout?'
                             '\n1-debug, 2-info, 3-warning, 4-error, 5-critical\nDefault=%(default)s')
debug_args = ('-d', debug.long)
debug_kwargs = dict(action='store_true', help='Whether to log debugging messages to stdout')

input_arguments = {
    coords_file_args: coords_file_kwargs,
}
symmetry_arguments = {
    max_symm_order_args: max_symm_order_kwargs,
    symmetry_type_args: symmetry_type_kwargs,
    order_detector_method_args: order_detector_method_kwargs,
    refine_method_args: refine_method_kwargs,
    symmetry_threshold_args: symmetry_threshold_kwargs,
    multiple_axes_args: multiple_axes_kwargs,
    user_order_args: user_order_kwargs,
    win_size_args: win_size_kwargs,
    minimum_metric_change_args: minimum_metric_change_kwargs,
    distance_cutoff_args: distance_cutoff_kwargs,
}
optimization_arguments = {
    optimization_args: optimization_kwargs,
    seed_args: seed_kwargs,
    optimization_steps_args: optimization_steps_kwargs,
    optimization_runs_args: optimization_runs_kwargs,
    cores_args: cores_kwargs,
}
output_arguments = {
    output_directory_args: output_directory_kwargs,
}
options_arguments = {
    log_level_args: log_level_kwargs,
    debug_args: debug_kwargs,
}
parser_arguments = dict(
    input=input_arguments,
    symmetry=symmetry_arguments,
    optimization=optimization_arguments,
    output=output_arguments,
    options=options_arguments,
)
symmetry_help = 'Control how internal symmetry is searched for, refined, and reported'
optimization_help = 'Control the Monte Carlo optimization of the repeat boundaries'
parser_groups = dict(
    input=dict(title=f'{"_" * len(input_title)}\n{input_title}'),
    symmetry=dict(title=f'{"_" * len(symmetry_title)}\n{symmetry_title}', description=f'\n{symmetry_help}'),
    optimization=dict(title=f'{"_" * len(optimization_title)}\n{optimization_title}',
                      description=f'\n{optimization_help}'),
    output=dict(title=f'{"_" * len(output_title)}\n{output_title}'),
    options=dict(title=f'{"_" * len(options_title)}\n{options_title}'),
)


def set_up_parser_with_groups(parser: argparse.ArgumentParser, parser_groups_: dict[str, dict]):
    """Add the input arguments to the passed ArgumentParser

    Args:
        parser: The ArgumentParser to add_argument_group() to
        parser_groups_: The groups to add to the ArgumentParser
    """
    for parser_name, parser_kwargs in parser_groups_.items():
        flags_kwargs = parser_arguments.get(parser_name, {})
        """flags_kwargs has args (flag names) as key and keyword args (flag params) as values"""
        group = parser.add_argument_group(**parser_kwargs)
        for flags_, kwargs in flags_kwargs.items():
            group.add_argument(*flags_, **kwargs)


entire_argparser = dict(fromfile_prefix_chars='@', allow_abbrev=False, formatter_class=Formatter, prog=program_command,
                        description=f'{"_" * len(program_name)}\n{program_name}\n\n'
                                    'Detect internal structural symmetry by aligning a residue chain against itself.\n'
                                    f"For argument help enter '{program_help}'")
entire_parser = argparse.ArgumentParser(**entire_argparser)
set_up_parser_with_groups(entire_parser, parser_groups)
symmetry_defaults = {}
"""Contains all the arguments and their default parameters used in symmetry detection"""


def parse_flags_to_namespaces(parser: argparse.ArgumentParser):
    """Collect the default value of every flag belonging to a namespace"""
    for group in parser._action_groups:
        for arg in group._group_actions:
            if arg.dest in symmetry_namespace:
                symmetry_defaults[arg.dest] = arg.default


parse_flags_to_namespaces(entire_parser)
defaults = dict(
    symmetry=symmetry_defaults,
)


def namespace_from_args(args: argparse.Namespace | dict[str, Any], namespace: str) -> dict[str, Any]:
    """Select the parsed flags belonging to a namespace

    Args:
        args: The parsed arguments
        namespace: The name of the namespace in namespaces
    Returns:
        The flag name to value mapping of flags in the namespace
    """
    if isinstance(args, argparse.Namespace):
        args = vars(args)

    return {flag: value for flag, value in args.items() if flag in namespaces[namespace]}
