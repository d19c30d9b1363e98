"""
ijasm - IJVM Assembler Command-Line Interface
=============================================

This module implements the command-line interface for the IJVM assembler.

Usage Examples
--------------
Basic assembly:
    $ ijasm add.jas

With output file:
    $ ijasm add.jas -o add.ijvm

Write to stdout:
    $ ijasm add.jas -o - | xxd

Generate all output files:
    $ ijasm add.jas -o add.ijvm -l add.lst -s add.sym

Custom instruction set, automatic WIDE:
    $ ijasm -c mic1.conf -w program.jas
"""

import sys
from pathlib import Path
from typing import Optional

import click

from ijvm_asm import __version__
from ijvm_asm.assembler import Assembler, OpcodeConfig
from ijvm_asm.errors import AssemblerError
from ijvm_asm.cli.errors import ExitCode, handle_cli_exception, setup_logging


STDOUT_NAME = "-"


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, allow_dash=True, path_type=Path),
    help="Output file, '-' for stdout (default: input.ijvm)",
)
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Opcode configuration file (default: built-in IJVM set)",
)
@click.option(
    "-f", "--force",
    is_flag=True,
    help="Generate output even if parsing or linking fails",
)
@click.option(
    "-w", "--widen",
    is_flag=True,
    help="Insert WIDE automatically for variable indices above 255",
)
@click.option(
    "-b", "--binary",
    is_flag=True,
    help="Write the raw text block only (no magic, no constant pool)",
)
@click.option(
    "-l", "--listing",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Generate listing file",
)
@click.option(
    "-s", "--symbols",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Generate symbol file",
)
@click.option("-i", "--info", is_flag=True, help="Log progress information")
@click.option("-d", "--debug", is_flag=True, help="Log debugging information")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="ijasm")
def main(
    input_file: Path,
    output: Optional[Path],
    config: Optional[Path],
    force: bool,
    widen: bool,
    binary: bool,
    listing: Optional[Path],
    symbols: Optional[Path],
    info: bool,
    debug: bool,
    verbose: bool,
) -> None:
    """
    Assemble JAS source code into an IJVM binary.

    INPUT_FILE is the assembly source file (.jas) to assemble.

    \b
    Examples:
        ijasm add.jas                # Outputs add.ijvm
        ijasm add.jas -o out.ijvm    # Specify output file
        ijasm add.jas -o -           # Write to stdout
        ijasm -w -f add.jas          # Widen and force
    """
    setup_logging(info=info, debug=debug)

    to_stdout = output is not None and str(output) == STDOUT_NAME
    if output is None:
        output = input_file.with_suffix(".ijvm")

    try:
        opcodes = OpcodeConfig.from_file(config) if config else OpcodeConfig.default()
        asm = Assembler(opcodes, auto_wide=widen, force=force)

        if verbose:
            click.echo(f"Assembling {input_file}...", err=True)

        try:
            asm.assemble_file(input_file)
        except AssemblerError:
            if asm.has_errors():
                click.echo(asm.get_error_report(), err=True)
                sys.exit(ExitCode.BUILD_ERROR)
            raise

        if asm.has_errors():
            # Forced through: show what was ignored
            click.echo(asm.get_error_report(), err=True)
        elif asm.get_warnings() and verbose:
            click.echo(asm.get_error_report(), err=True)

        data = asm.get_code() if binary else asm.get_ijvm()
        if to_stdout:
            click.get_binary_stream("stdout").write(data)
        elif binary:
            asm.write_binary(output)
        else:
            asm.write_ijvm(output)

        if listing:
            asm.write_listing(listing)
        if symbols:
            asm.write_symbols(symbols)

        if verbose:
            target = "stdout" if to_stdout else output
            click.echo(f"Wrote {len(data)} bytes to {target}", err=True)
            click.echo(
                f"Assembly complete: {len(asm.get_methods())} method(s), "
                f"{len(asm.get_constant_pool())} constant(s), {len(asm.get_code())} bytes of text",
                err=True,
            )

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Assembly")


if __name__ == "__main__":
    main()
