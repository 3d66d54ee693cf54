"""
Directive resolver.

Classifies declared functions into fixtures, once-fixtures, tests and
lifecycle hooks from the annotations in their attached comments, falling
back to name-prefix conventions. Malformed directives produce warnings; the
resolver never raises for per-function problems.
"""

import json
import logging
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

import yaml
from pydantic import BaseModel, Field

from annotest.analysis.parser import DeclaredFunction
from annotest.directives.grammar import (
    ROLE_KINDS,
    Directive,
    DirectiveKind,
    parse_comment,
)
from annotest.directives.labels import (
    AFTER_TEST_PREFIXES,
    BEFORE_TEST_PREFIXES,
    DEFAULT_TEST_LABEL,
    FIXTURE_PREFIXES,
    LabelRegistry,
    matches_any,
)

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Role a declared function plays in a test run."""

    FIXTURE = "fixture"
    ONCE_FIXTURE = "once_fixture"
    TEST = "test"
    BEFORE_TEST = "before_test"
    AFTER_TEST = "after_test"


_ROLE_FOR_KIND: dict[DirectiveKind, Role] = {
    DirectiveKind.TEST: Role.TEST,
    DirectiveKind.FIXTURE: Role.FIXTURE,
    DirectiveKind.ONCE_FIXTURE: Role.ONCE_FIXTURE,
    DirectiveKind.BEFORE_TEST: Role.BEFORE_TEST,
    DirectiveKind.AFTER_TEST: Role.AFTER_TEST,
}

_LABELLED_ROLES = frozenset({Role.TEST, Role.BEFORE_TEST, Role.AFTER_TEST})


class Registration(BaseModel):
    """The resolved role of one declared function."""

    model_config = {"frozen": True}

    role: Role = Field(..., description="Role assigned to the function")
    function: DeclaredFunction = Field(..., description="The classified declaration")
    labels: tuple[str, ...] = Field(
        default=(),
        description="Labels for tests and hooks; empty for fixtures and unlabelled hooks",
    )

    @property
    def name(self) -> str:
        """Unqualified function name."""
        return self.function.name


class ParseResult(BaseModel):
    """
    Outcome of directive resolution for a package.

    ``registrations`` keeps source order; the role views below are derived
    from it.
    """

    package_identifier: str = Field(default="", description="Package the functions belong to")
    default_label: str = Field(default=DEFAULT_TEST_LABEL, description="Label for bare @test")
    label_table: dict[str, list[str]] = Field(
        default_factory=dict, description="Label name to matching name prefixes"
    )
    registrations: list[Registration] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    auto_classify: bool = Field(default=True, description="Whether prefix matching was enabled")

    def by_role(self, role: Role) -> list[Registration]:
        """Return registrations with the given role, in source order."""
        return [r for r in self.registrations if r.role == role]

    @property
    def fixtures(self) -> list[DeclaredFunction]:
        return [r.function for r in self.by_role(Role.FIXTURE)]

    @property
    def once_fixtures(self) -> list[DeclaredFunction]:
        return [r.function for r in self.by_role(Role.ONCE_FIXTURE)]

    @property
    def tests(self) -> list[Registration]:
        return self.by_role(Role.TEST)

    @property
    def before_hooks(self) -> list[Registration]:
        return self.by_role(Role.BEFORE_TEST)

    @property
    def after_hooks(self) -> list[Registration]:
        return self.by_role(Role.AFTER_TEST)

    def to_dict(self) -> dict[str, Any]:
        """Summarize the result in the shape consumed by entry-point builders."""

        def labelled(items: list[Registration]) -> list[dict[str, Any]]:
            return [{"function": r.function.qualified_name, "labels": list(r.labels)} for r in items]

        return {
            "package": self.package_identifier,
            "default_label": self.default_label,
            "labels": {label: list(p) for label, p in self.label_table.items()},
            "fixtures": [f.qualified_name for f in self.fixtures],
            "once_fixtures": [f.qualified_name for f in self.once_fixtures],
            "before_tests": labelled(self.before_hooks),
            "tests": labelled(self.tests),
            "after_tests": labelled(self.after_hooks),
            "warnings": list(self.warnings),
        }

    def to_json(self) -> str:
        """Serialize the summary to JSON."""
        return json.dumps(self.to_dict(), indent=2)

    def to_yaml(self) -> str:
        """Serialize the summary to YAML."""
        result: str = yaml.dump(
            self.to_dict(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        return result


class DirectiveResolver:
    """
    Classify declared functions using comment annotations and name prefixes.

    File-scope declarations (``@testLabel``, ``@defaultTestLabel``,
    ``@disableAutoLabelling``) are read from every comment block first, then
    each function is classified. For each function the first match wins:
    ``@test``, ``@fixture``, ``@onceFixture``, ``@beforeTest``,
    ``@afterTest``, then (with auto-classification) fixture, before-hook and
    after-hook prefixes, then label prefixes.

    Example:
        >>> resolver = DirectiveResolver()
        >>> result = resolver.resolve(scan.functions, scan.comments)
        >>> [t.name for t in result.tests]
        ['test_widget']
    """

    def __init__(self, auto_classify: bool = True) -> None:
        self.auto_classify = auto_classify

    def resolve(
        self,
        functions: Sequence[DeclaredFunction],
        comments: Iterable[str],
        package_identifier: str | None = None,
    ) -> ParseResult:
        """
        Resolve roles and labels for ``functions``.

        Args:
            functions: Declared functions in scan order.
            comments: Raw comment blocks for file-scope directives.
            package_identifier: Overrides the package taken from the first function.

        Returns:
            ParseResult with registrations, the label table and warnings.
        """
        labels = LabelRegistry.with_builtins()
        warnings: list[str] = []
        auto_classify = self._read_file_scope(comments, labels, warnings)

        # The default label always exists, even when nothing references it.
        labels.ensure(labels.default_label)

        registrations: list[Registration] = []
        for fn in functions:
            registration = self._classify(fn, labels, auto_classify, warnings)
            if registration is not None:
                logger.debug(
                    "Classified %s as %s %s",
                    fn.qualified_name,
                    registration.role.value,
                    list(registration.labels),
                )
                registrations.append(registration)

        if package_identifier is None:
            package_identifier = next((fn.package for fn in functions if fn.package), "")

        for warning in warnings:
            logger.debug("Directive warning: %s", warning)

        return ParseResult(
            package_identifier=package_identifier,
            default_label=labels.default_label,
            label_table=labels.to_dict(),
            registrations=registrations,
            warnings=warnings,
            auto_classify=auto_classify,
        )

    def _read_file_scope(
        self,
        comments: Iterable[str],
        labels: LabelRegistry,
        warnings: list[str],
    ) -> bool:
        """Apply file-scope declarations; return the effective auto-classify flag."""
        auto_classify = self.auto_classify
        file_scope = {
            DirectiveKind.TEST_LABEL,
            DirectiveKind.DEFAULT_TEST_LABEL,
            DirectiveKind.DISABLE_AUTO_LABELLING,
        }

        for comment in comments:
            parsed = parse_comment(comment)
            for error in parsed.errors:
                if DirectiveKind(error.annotation) in file_scope:
                    warnings.append(str(error))

            for directive in parsed.directives:
                if directive.kind == DirectiveKind.TEST_LABEL:
                    name, *prefixes = directive.params
                    labels.add(name, *prefixes)
                elif directive.kind == DirectiveKind.DEFAULT_TEST_LABEL:
                    if len(directive.params) > 1:
                        warnings.append(
                            f"@defaultTestLabel takes exactly one label, ignoring '{directive.line}'"
                        )
                        continue
                    labels.default_label = directive.params[0]
                elif directive.kind == DirectiveKind.DISABLE_AUTO_LABELLING:
                    auto_classify = False

        return auto_classify

    def _classify(
        self,
        fn: DeclaredFunction,
        labels: LabelRegistry,
        auto_classify: bool,
        warnings: list[str],
    ) -> Registration | None:
        parsed = parse_comment(fn.doc_comment)
        malformed = False

        for kind in ROLE_KINDS:
            directive = parsed.first(kind)
            if directive is not None:
                return self._from_directive(fn, directive, labels)
            error = parsed.error_for(kind)
            if error is not None:
                warnings.append(f"{fn.qualified_name}: {error}")
                malformed = True
                break

        if not auto_classify:
            return None

        name = fn.name
        if matches_any(name, FIXTURE_PREFIXES):
            return Registration(role=Role.FIXTURE, function=fn)
        if malformed:
            return None
        if matches_any(name, BEFORE_TEST_PREFIXES):
            return Registration(role=Role.BEFORE_TEST, function=fn)
        if matches_any(name, AFTER_TEST_PREFIXES):
            return Registration(role=Role.AFTER_TEST, function=fn)

        matched = labels.match(name)
        if matched:
            return Registration(role=Role.TEST, function=fn, labels=tuple(matched))
        return None

    def _from_directive(
        self,
        fn: DeclaredFunction,
        directive: Directive,
        labels: LabelRegistry,
    ) -> Registration:
        role = _ROLE_FOR_KIND[directive.kind]
        if role not in _LABELLED_ROLES:
            return Registration(role=role, function=fn)

        if directive.params:
            assigned = tuple(directive.params)
            for label in assigned:
                labels.ensure(label)
        else:
            assigned = (labels.default_label,)
        return Registration(role=role, function=fn, labels=assigned)


def resolve_directives(
    functions: Sequence[DeclaredFunction],
    comments: Iterable[str],
    auto_classify: bool = True,
    package_identifier: str | None = None,
) -> ParseResult:
    """
    Resolve directives for declared functions.

    Convenience function that creates a resolver and runs it.
    """
    resolver = DirectiveResolver(auto_classify=auto_classify)
    return resolver.resolve(functions, comments, package_identifier)
