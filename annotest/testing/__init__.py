"""
annotest execution engine.

Typed fixture resolution, lifecycle hooks and labelled test runs.
"""

from annotest.testing.engine import (
    Hook,
    Labels,
    RegisteredTest,
    Suite,
    T,
    TestState,
    parse_labels,
)
from annotest.testing.fixtures import (
    Dependency,
    FixtureRegistry,
    FixtureResolver,
    OnceProvider,
    Provider,
    ResolutionContainer,
)
from annotest.testing.models import RunResult, TestResult, TestStatus

__all__ = [
    # Fixtures
    "Dependency",
    "FixtureRegistry",
    "FixtureResolver",
    "OnceProvider",
    "Provider",
    "ResolutionContainer",
    # Engine
    "Hook",
    "Labels",
    "RegisteredTest",
    "Suite",
    "T",
    "TestState",
    "parse_labels",
    # Results
    "RunResult",
    "TestResult",
    "TestStatus",
]
