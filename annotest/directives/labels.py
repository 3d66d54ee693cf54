"""
Label registry and name-prefix matching.

A label is a named test category. Each label owns an ordered list of name
prefixes used to auto-classify undirected functions as tests carrying that
label.
"""

from collections.abc import Iterable, Iterator

UNIT_LABEL = "unit"
INTEGRATION_LABEL = "integration"
REGRESSION_LABEL = "regression"

DEFAULT_TEST_LABEL = UNIT_LABEL

BUILTIN_LABELS: dict[str, tuple[str, ...]] = {
    UNIT_LABEL: ("test", "unit"),
    INTEGRATION_LABEL: ("int", "integration"),
    REGRESSION_LABEL: ("reg", "regression"),
}

FIXTURE_PREFIXES: tuple[str, ...] = ("fix", "fixture")
BEFORE_TEST_PREFIXES: tuple[str, ...] = ("pre", "beforeTest", "before_test")
AFTER_TEST_PREFIXES: tuple[str, ...] = ("post", "afterTest", "after_test")


def prefix_match(name: str, prefix: str) -> bool:
    """Check whether ``name`` starts with ``prefix`` at a word boundary.

    The character following the prefix must be an underscore or an uppercase
    letter, so ``testFoo`` and ``test_foo`` match ``test`` while ``testimony``
    does not. A prefix ending in an underscore is already delimited.

    Args:
        name: Function name to test.
        prefix: Candidate prefix.

    Returns:
        True if the name matches the prefix.
    """
    if not prefix or not name.startswith(prefix):
        return False
    if len(name) == len(prefix) or prefix.endswith("_"):
        return True
    following = name[len(prefix)]
    return following == "_" or following.isupper()


def matches_any(name: str, prefixes: Iterable[str]) -> bool:
    """Check whether ``name`` matches at least one of ``prefixes``."""
    return any(prefix_match(name, prefix) for prefix in prefixes)


class LabelRegistry:
    """Mapping from label name to its matching name prefixes.

    Iteration follows insertion order so that resolution results are
    reproducible across runs.

    Example:
        >>> registry = LabelRegistry.with_builtins()
        >>> registry.add("blackbox", "black_")
        >>> registry.match("black_checkSomething")
        ['blackbox']
    """

    def __init__(self, default_label: str = DEFAULT_TEST_LABEL) -> None:
        """Initialize an empty registry with the given default label."""
        self._labels: dict[str, list[str]] = {}
        self.default_label = default_label

    @classmethod
    def with_builtins(cls) -> "LabelRegistry":
        """Create a registry seeded with the built-in labels."""
        registry = cls()
        for label, prefixes in BUILTIN_LABELS.items():
            registry.add(label, *prefixes)
        return registry

    def add(self, label: str, *prefixes: str) -> None:
        """Register prefixes under ``label``, appending to any existing ones."""
        self._labels.setdefault(label, []).extend(prefixes)

    def ensure(self, label: str) -> None:
        """Make sure ``label`` exists, creating it with no prefixes."""
        self._labels.setdefault(label, [])

    def prefixes(self, label: str) -> list[str]:
        """Return a copy of the prefixes registered for ``label``."""
        return list(self._labels.get(label, []))

    def match(self, name: str) -> list[str]:
        """Return every label with a prefix matching ``name``, in registry order."""
        return [label for label, prefixes in self._labels.items() if matches_any(name, prefixes)]

    def to_dict(self) -> dict[str, list[str]]:
        """Return the label table as a plain dictionary."""
        return {label: list(prefixes) for label, prefixes in self._labels.items()}

    def __contains__(self, label: object) -> bool:
        return label in self._labels

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        return f"LabelRegistry({list(self._labels)}, default={self.default_label!r})"
