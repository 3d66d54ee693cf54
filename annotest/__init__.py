"""
annotest - Directive-driven test orchestration.

Functions are classified as fixtures, tests and lifecycle hooks from
``@directive`` comments or name prefixes, then run with their fixtures
injected by parameter type and filtered by label.

Usage:
    annotest scan <path>                 # Show how functions were classified
    annotest run <path> --labels unit    # Run labelled tests
    annotest init <path>                 # Write a sample annotest.yaml
"""

from annotest.errors import SkipTest
from annotest.testing.engine import Labels, Suite, T, parse_labels

__version__ = "0.1.0"

__all__ = [
    "Labels",
    "SkipTest",
    "Suite",
    "T",
    "parse_labels",
]
