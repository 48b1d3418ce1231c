"""
Module for running symmetry detection from the command line. Reads residue coordinate tables, detects the internal
symmetry of each, and writes the symmetry axes and a summary of every result.

"""
from __future__ import annotations

import logging.config
import os
import sys
from collections.abc import Sequence

import numpy as np
import pandas as pd

import symrepeat.utils.path as putils
logging.config.dictConfig(putils.logging_cfg)
logger = logging.getLogger(putils.program_name.lower())
from symrepeat import flags, protocols, utils
from symrepeat.resources.job import SymmetryParameters


def load_coords(file: str) -> np.ndarray:
    """Read a whitespace delimited table of residue x, y, and z coordinates

    Args:
        file: The location of the table
    Raises:
        InputError: If the file can't be read
    Returns:
        The coordinates with shape (n, 3)
    """
    try:
        return np.loadtxt(file, dtype=float, ndmin=2, comments='#')
    except (OSError, ValueError) as error:
        raise utils.InputError(f"Couldn't read coordinates from '{file}'. {error}") from error


@utils.handle_errors(errors=(utils.SymRepeatException,))
def analyze_file(file: str, parameters: SymmetryParameters, output_directory: str) -> pd.Series:
    """Detect the symmetry of the coordinates in a file and write its axes

    Args:
        file: The location of the coordinate table
        parameters: The analysis parameters
        output_directory: Where to write the axes table
    Returns:
        The summary of the result, or the exception if one was raised
    """
    name = os.path.splitext(os.path.basename(file))[0]
    coords = load_coords(file)
    logger.info(f'Analyzing {name} with {coords.shape[0]} residues')
    result = protocols.analyze(coords, parameters)
    axes_df = result.axes.to_dataframe(coords, result.multiple_alignment if result.refined else None,
                                       name=name)
    axes_file = os.path.join(output_directory, putils.default_axes_file.format(name))
    axes_df.to_csv(axes_file, sep='\t', index=False)
    logger.debug(f'Wrote the axes of {name} to {axes_file}')
    return result.summary(name)


def main(args: Sequence[str] = None) -> int:
    """Run the SymRepeat program

    Args:
        args: The command line arguments. Uses sys.argv by default
    Returns:
        The exit code
    """
    args = flags.entire_parser.parse_args(args)
    # -----------------------------------------------------------------------------------------------------------------
    #  Start Logging
    # -----------------------------------------------------------------------------------------------------------------
    if args.debug:
        utils.set_logging_to_level(logging.DEBUG)
        logger.warning('Debug mode. Generates verbose output')
    else:
        utils.set_logging_to_level(level=args.log_level)
    # -----------------------------------------------------------------------------------------------------------------
    #  Process the job parameters and output location
    # -----------------------------------------------------------------------------------------------------------------
    try:
        parameters = SymmetryParameters.from_flags(**vars(args))
    except utils.InputError as error:
        logger.critical(f'Invalid {putils.program_name} arguments. {error}')
        return 1

    output_directory = args.output_directory or os.path.join(os.getcwd(), putils.program_output)
    os.makedirs(output_directory, exist_ok=True)
    # -----------------------------------------------------------------------------------------------------------------
    #  Analyze each file
    # -----------------------------------------------------------------------------------------------------------------
    summaries, exceptions = [], []
    for file in args.coords_file:
        result = analyze_file(file, parameters, output_directory)
        if isinstance(result, BaseException):
            exceptions.append((file, result))
        else:
            summaries.append(result)
    # -----------------------------------------------------------------------------------------------------------------
    #  Report the results and any exceptions
    # -----------------------------------------------------------------------------------------------------------------
    if summaries:
        summary_df = pd.DataFrame(summaries)
        summary_file = os.path.join(output_directory, putils.default_summary_file.format(utils.starttime))
        summary_df.to_csv(summary_file, sep='\t', index=False)
        table = [summary_df.columns.tolist()] + summary_df.astype(str).values.tolist()
        logger.info('Symmetry results:\n\t%s' % '\n\t'.join(utils.pretty_format_table(table)))
        logger.info(f'The file "{summary_file}" contains the summary of every result')

    exit_code = 0
    if exceptions:
        logger.warning(f'Exceptions were thrown for {len(exceptions)} files\n\t%s'
                       % '\n\t'.join(f'{file}: {error}' for file, error in exceptions))
        exit_code = 1

    return exit_code


def app():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print('\nRun Ended By KeyboardInterrupt\n')
        sys.exit(2)


if __name__ == '__main__':
    app()
