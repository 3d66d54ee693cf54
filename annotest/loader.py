"""
Suite loader.

Scans test sources, resolves their directives, imports the modules and
registers every resolved function on a ``Suite`` in a fixed order: labels,
fixtures, once-fixtures, before-hooks, tests, after-hooks.
"""

import importlib.util
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

from annotest.analysis.parser import (
    DEFAULT_FILE_PATTERN,
    DeclaredFunction,
    PythonParser,
    ScanResult,
)
from annotest.directives.resolver import DirectiveResolver, ParseResult, Registration, Role
from annotest.errors import RegistrationError
from annotest.testing.engine import Suite

logger = logging.getLogger(__name__)


@dataclass
class LoadedSuite:
    """A suite built from source files, with what was learned on the way."""

    suite: Suite
    scan: ScanResult
    resolution: ParseResult
    errors: list[str] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return list(self.resolution.warnings)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors) or self.scan.has_errors


class SuiteLoader:
    """
    Build a ``Suite`` from a directory or a single file of test sources.

    Example:
        >>> loader = SuiteLoader()
        >>> loaded = loader.load("tests/")
        >>> loaded.suite.run("unit").exit_code
        0
    """

    def __init__(
        self,
        auto_classify: bool = True,
        file_pattern: str = DEFAULT_FILE_PATTERN,
    ) -> None:
        self.auto_classify = auto_classify
        self.file_pattern = file_pattern
        self._parser = PythonParser()
        self._modules: dict[str, ModuleType] = {}
        self._failed: dict[str, ImportError] = {}

    def scan(self, path: str | Path) -> ScanResult:
        """Scan a directory (non-recursive) or a single file.

        Raises:
            FileNotFoundError: If the path does not exist
        """
        path = Path(path)
        if path.is_dir():
            return self._parser.scan_directory(path, self.file_pattern)
        return self._parser.parse_file(path)

    def resolve(self, scan: ScanResult) -> ParseResult:
        """Resolve directives for a scan."""
        resolver = DirectiveResolver(auto_classify=self.auto_classify)
        return resolver.resolve(scan.functions, scan.comments)

    def load(self, path: str | Path) -> LoadedSuite:
        """Scan, resolve, import and register.

        Functions that cannot be imported or registered are reported in
        ``LoadedSuite.errors``; the rest of the suite is still built.
        """
        scan = self.scan(path)
        resolution = self.resolve(scan)
        suite = Suite(default_label=resolution.default_label)
        loaded = LoadedSuite(suite=suite, scan=scan, resolution=resolution)

        for error in scan.errors:
            logger.warning(error)

        for label in resolution.label_table:
            suite.test_label(label)

        for role in (Role.FIXTURE, Role.ONCE_FIXTURE, Role.BEFORE_TEST, Role.TEST, Role.AFTER_TEST):
            for registration in resolution.by_role(role):
                try:
                    self._register(suite, registration)
                except ImportError as e:
                    # One report per broken module, not per function.
                    message = str(e)
                    if message not in loaded.errors:
                        logger.warning("Cannot import %s", message)
                        loaded.errors.append(message)
                except (AttributeError, RegistrationError) as e:
                    message = f"{registration.function.qualified_name}: {e}"
                    logger.warning("Cannot register %s", message)
                    loaded.errors.append(message)

        logger.debug("Loaded %r from %s", suite, path)
        return loaded

    def _register(self, suite: Suite, registration: Registration) -> None:
        fn = self._lookup(registration.function)
        labels = registration.labels

        if registration.role == Role.FIXTURE:
            suite.fixture(fn)
        elif registration.role == Role.ONCE_FIXTURE:
            suite.once_fixture(fn)
        elif registration.role == Role.BEFORE_TEST:
            suite.before_test(fn, *labels)
        elif registration.role == Role.AFTER_TEST:
            suite.after_test(fn, *labels)
        else:
            suite.test(registration.function.qualified_name, fn, *labels)

    def _lookup(self, declared: DeclaredFunction) -> Any:
        if declared.file_path is None:
            raise ImportError(f"{declared.qualified_name}: declaration has no source file")
        module = self._import(Path(declared.file_path))
        return getattr(module, declared.name)

    def _import(self, path: Path) -> ModuleType:
        module_name = _module_name(path)
        if module_name in self._modules:
            return self._modules[module_name]
        if module_name in self._failed:
            raise self._failed[module_name]

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Could not load module: {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            del sys.modules[module_name]
            error = ImportError(f"Error importing {path}: {e}")
            self._failed[module_name] = error
            raise error from e

        self._modules[module_name] = module
        return module


def _module_name(path: Path) -> str:
    stem = str(path.resolve().with_suffix(""))
    return "annotest_loaded_" + re.sub(r"\W", "_", stem).strip("_")


def load_suite(
    path: str | Path,
    auto_classify: bool = True,
    file_pattern: str = DEFAULT_FILE_PATTERN,
) -> LoadedSuite:
    """
    Load a suite from test sources.

    Convenience function that creates a loader and runs it.
    """
    return SuiteLoader(auto_classify=auto_classify, file_pattern=file_pattern).load(path)
