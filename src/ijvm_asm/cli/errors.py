"""
Shared CLI Plumbing
===================

Exit codes, logging setup and the exception-to-exit-code mapping used by
both ``ijasm`` and ``ijdisasm``.
"""

import logging
import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Process exit status of the CLI tools."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Source, link or IJVM file problem
    INVALID_ARGS = 2     # Bad option, unreadable file or opcode configuration
    INTERNAL_ERROR = 3   # Toolchain bug


def setup_logging(info: bool = False, debug: bool = False) -> None:
    """Route library logging to stderr at WARNING, or INFO/DEBUG when asked."""
    level = logging.DEBUG if debug else logging.INFO if info else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s" if debug else "%(message)s",
    )


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Report ``error`` on stderr and exit with the matching ExitCode.

    Assembler errors are printed as-is since they are already formatted
    as diagnostics. Other toolchain errors get ``error_type`` as a prefix
    ("Disassembly error: ..."). Internal failures print a traceback when
    ``verbose`` is set.
    """
    from ijvm_asm.errors import AssemblerError, ConfigError, IJVMError, InternalError

    if isinstance(error, AssemblerError):
        message, code = str(error), ExitCode.BUILD_ERROR
    elif isinstance(error, ConfigError):
        message, code = f"Configuration error: {error}", ExitCode.INVALID_ARGS
    elif isinstance(error, IJVMError) and not isinstance(error, InternalError):
        message, code = f"{error_type or 'Toolchain'} error: {error}", ExitCode.BUILD_ERROR
    elif isinstance(error, (click.BadParameter, FileNotFoundError, PermissionError)):
        message, code = f"Error: {error}", ExitCode.INVALID_ARGS
    else:
        message, code = f"Internal error: {error}", ExitCode.INTERNAL_ERROR

    click.echo(message, err=True)
    if code is ExitCode.INTERNAL_ERROR and verbose:
        traceback.print_exc()
    sys.exit(code)
