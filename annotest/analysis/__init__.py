"""
annotest source scanning.

Components:
- parser: Tree-sitter based extraction of top-level functions and comments
"""

from annotest.analysis.parser import (
    DEFAULT_FILE_PATTERN,
    DeclaredFunction,
    Parameter,
    PythonParser,
    ScanResult,
    Signature,
    SourceLocation,
    parse_python_file,
    parse_python_string,
    scan_directory,
)

__all__ = [
    "DEFAULT_FILE_PATTERN",
    "DeclaredFunction",
    "Parameter",
    "PythonParser",
    "ScanResult",
    "Signature",
    "SourceLocation",
    "parse_python_file",
    "parse_python_string",
    "scan_directory",
]
