"""
Annotation grammar for directives embedded in comments.

An annotation is ``@name`` optionally followed by a parenthesized,
comma-separated parameter list, alone on its line::

    # @testLabel(blackbox, black_)
    # @test(integration, slow)
    # @fixture
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from annotest.errors import DirectiveParseError


class DirectiveKind(str, Enum):
    """Annotations understood by the directive resolver."""

    FIXTURE = "fixture"
    ONCE_FIXTURE = "onceFixture"
    TEST = "test"
    BEFORE_TEST = "beforeTest"
    AFTER_TEST = "afterTest"
    TEST_LABEL = "testLabel"
    DEFAULT_TEST_LABEL = "defaultTestLabel"
    DISABLE_AUTO_LABELLING = "disableAutoLabelling"


class ParamShape(Enum):
    """Whether an annotation takes parameters."""

    NONE = "none"
    OPTIONAL = "optional"
    REQUIRED = "required"


ANNOTATION_SHAPES: dict[DirectiveKind, ParamShape] = {
    DirectiveKind.FIXTURE: ParamShape.NONE,
    DirectiveKind.ONCE_FIXTURE: ParamShape.NONE,
    DirectiveKind.TEST: ParamShape.OPTIONAL,
    DirectiveKind.BEFORE_TEST: ParamShape.OPTIONAL,
    DirectiveKind.AFTER_TEST: ParamShape.OPTIONAL,
    DirectiveKind.TEST_LABEL: ParamShape.REQUIRED,
    DirectiveKind.DEFAULT_TEST_LABEL: ParamShape.REQUIRED,
    DirectiveKind.DISABLE_AUTO_LABELLING: ParamShape.NONE,
}

# Per-function role annotations, in the order they are tried.
ROLE_KINDS: tuple[DirectiveKind, ...] = (
    DirectiveKind.TEST,
    DirectiveKind.FIXTURE,
    DirectiveKind.ONCE_FIXTURE,
    DirectiveKind.BEFORE_TEST,
    DirectiveKind.AFTER_TEST,
)

FILE_SCOPE_KINDS: tuple[DirectiveKind, ...] = (
    DirectiveKind.TEST_LABEL,
    DirectiveKind.DEFAULT_TEST_LABEL,
    DirectiveKind.DISABLE_AUTO_LABELLING,
)

_ANNOTATION_LINE = re.compile(r"^\s*@(?P<name>\w+)(?P<rest>.*)$")
_PARAM_LIST = re.compile(r"^\((?P<params>[^()]*)\)$")
_PARAM = re.compile(r"^\w+$")


@dataclass(frozen=True)
class Directive:
    """A parsed annotation: its kind and trimmed string parameters."""

    kind: DirectiveKind
    params: tuple[str, ...] = ()
    line: str = ""


@dataclass
class CommentDirectives:
    """All annotations found in one comment, with recoverable parse errors."""

    directives: list[Directive] = field(default_factory=list)
    errors: list[DirectiveParseError] = field(default_factory=list)

    def of_kind(self, kind: DirectiveKind) -> list[Directive]:
        """Return every well-formed directive of ``kind``, in comment order."""
        return [d for d in self.directives if d.kind == kind]

    def first(self, kind: DirectiveKind) -> Directive | None:
        """Return the first well-formed directive of ``kind``, if any."""
        for directive in self.directives:
            if directive.kind == kind:
                return directive
        return None

    def error_for(self, kind: DirectiveKind) -> DirectiveParseError | None:
        """Return the first parse error raised for an annotation of ``kind``."""
        for error in self.errors:
            if error.annotation == kind.value:
                return error
        return None


def parse_directive(line: str) -> Directive | None:
    """Parse a single comment line.

    Args:
        line: One line of comment text, without comment markers.

    Returns:
        The directive, or None when the line is not a known annotation.

    Raises:
        DirectiveParseError: If the line is a known annotation with
            malformed parameters.
    """
    match = _ANNOTATION_LINE.match(line)
    if match is None:
        return None
    try:
        kind = DirectiveKind(match.group("name"))
    except ValueError:
        return None

    text = line.strip()
    rest = match.group("rest").strip()
    shape = ANNOTATION_SHAPES[kind]

    if not rest:
        if shape is ParamShape.REQUIRED:
            raise DirectiveParseError(kind.value, text, "requires parameters")
        return Directive(kind=kind, line=text)

    param_match = _PARAM_LIST.match(rest)
    if param_match is None:
        raise DirectiveParseError(kind.value, text, "parameters could not be parsed")
    if shape is ParamShape.NONE:
        raise DirectiveParseError(kind.value, text, "does not take parameters")

    params = tuple(p.strip() for p in param_match.group("params").split(","))
    if not all(_PARAM.match(p) for p in params):
        # Also rejects an empty list: "()" splits into a single empty string.
        raise DirectiveParseError(kind.value, text, "parameters could not be parsed")
    return Directive(kind=kind, params=params, line=text)


def parse_comment(comment: str | None) -> CommentDirectives:
    """Collect every annotation in ``comment`` line by line."""
    result = CommentDirectives()
    if not comment:
        return result
    for line in comment.splitlines():
        try:
            directive = parse_directive(line)
        except DirectiveParseError as e:
            result.errors.append(e)
            continue
        if directive is not None:
            result.directives.append(directive)
    return result
