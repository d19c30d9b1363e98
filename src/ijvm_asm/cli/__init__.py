"""
IJVM Toolchain Command-Line Interface
=====================================

This package provides command-line tools for the IJVM toolchain:

- **ijasm**: JAS assembler
- **ijdisasm**: IJVM disassembler

Each tool is implemented as a Click-based CLI application with
comprehensive help and error reporting.
"""

__all__ = ["ijasm", "ijdisasm"]
