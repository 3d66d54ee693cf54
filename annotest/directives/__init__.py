"""
annotest directive resolution.

Components:
- labels: Label registry and name-prefix matching
- grammar: Annotation parsing
- resolver: Classification of declared functions
"""

from annotest.directives.grammar import Directive, DirectiveKind, parse_comment, parse_directive
from annotest.directives.labels import (
    BUILTIN_LABELS,
    DEFAULT_TEST_LABEL,
    LabelRegistry,
    prefix_match,
)
from annotest.directives.resolver import (
    DirectiveResolver,
    ParseResult,
    Registration,
    Role,
    resolve_directives,
)

__all__ = [
    # Labels
    "BUILTIN_LABELS",
    "DEFAULT_TEST_LABEL",
    "LabelRegistry",
    "prefix_match",
    # Grammar
    "Directive",
    "DirectiveKind",
    "parse_comment",
    "parse_directive",
    # Resolver
    "DirectiveResolver",
    "ParseResult",
    "Registration",
    "Role",
    "resolve_directives",
]
