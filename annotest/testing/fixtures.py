"""
Type-keyed fixture resolution.

This module provides fixture providers (callables wrapped with the type they
produce and the types they depend on), a registry keyed by produced type, a
static dependency resolver for validating the fixture graph, and the
per-test resolution container that instantiates fixtures on demand.

Follows patterns established in annotest.directives.resolver.
"""

import inspect
import logging
import threading
import typing
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from annotest.errors import (
    DependencyCycleError,
    MissingDependencyError,
    RegistrationError,
    ResolutionError,
    type_name,
)

logger = logging.getLogger(__name__)

EMPTY = inspect.Parameter.empty

Arguments = tuple[list[Any], dict[str, Any]]


def callable_name(fn: Any) -> str:
    """Best-effort display name for a callable."""
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    return name if isinstance(name, str) else repr(fn)


# =============================================================================
# Dependencies
# =============================================================================


@dataclass(frozen=True)
class Dependency:
    """A parameter of a callable, keyed by its annotated type."""

    name: str
    type: Any
    default: Any = EMPTY
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD

    @property
    def has_default(self) -> bool:
        return self.default is not EMPTY


def inspect_dependencies(fn: Callable[..., Any]) -> list[Dependency]:
    """Read the typed parameters of ``fn``.

    Args:
        fn: Function, class or callable object.

    Returns:
        Dependencies in parameter order. ``*args``/``**kwargs`` are ignored.

    Raises:
        RegistrationError: If ``fn`` is not callable, is a coroutine function,
            or has a required parameter without a type annotation.
    """
    signature, hints = _inspect(fn)
    dependencies: list[Dependency] = []
    for param in signature.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(param.name, EMPTY)
        if annotation is EMPTY and param.default is EMPTY:
            raise RegistrationError(
                f"Parameter '{param.name}' of '{callable_name(fn)}' needs a type annotation"
            )
        dependencies.append(
            Dependency(name=param.name, type=annotation, default=param.default, kind=param.kind)
        )
    return dependencies


def _inspect(fn: Any) -> tuple[inspect.Signature, dict[str, Any]]:
    if not callable(fn):
        raise RegistrationError(f"Expected a callable, got {type(fn).__name__}")
    if inspect.iscoroutinefunction(fn):
        raise RegistrationError(f"Coroutine function '{callable_name(fn)}' is not supported")

    if inspect.isclass(fn):
        target = fn.__init__
    elif inspect.isfunction(fn) or inspect.ismethod(fn):
        target = fn
    else:
        target = getattr(fn, "__call__", fn)

    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        raise RegistrationError(f"Cannot inspect '{callable_name(fn)}': {e}") from e

    try:
        hints = typing.get_type_hints(target)
    except NameError as e:
        raise RegistrationError(
            f"Cannot resolve annotations of '{callable_name(fn)}': {e}"
        ) from e
    except TypeError:
        # Builtins and partials carry no readable annotations.
        hints = {}
    return signature, hints


# =============================================================================
# Providers
# =============================================================================


class Provider:
    """A fixture: a callable producing one value of ``result_type``.

    Example:
        >>> def build_widget(config: Config) -> Widget: ...
        >>> provider = Provider.from_callable(build_widget)
        >>> provider.result_type
        <class 'Widget'>
        >>> [d.type for d in provider.dependencies]
        [<class 'Config'>]
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        result_type: Any,
        dependencies: list[Dependency],
    ) -> None:
        self.fn = fn
        self.result_type = result_type
        self.dependencies = dependencies

    @classmethod
    def from_callable(cls, fn: Callable[..., Any]) -> "Provider":
        """Build a provider from ``fn``'s signature.

        Classes provide instances of themselves; functions provide their
        return annotation.

        Raises:
            RegistrationError: If the callable declares no result type.
        """
        dependencies = inspect_dependencies(fn)
        if inspect.isclass(fn):
            result_type: Any = fn
        else:
            _, hints = _inspect(fn)
            result_type = hints.get("return", EMPTY)
        if result_type is EMPTY or result_type is None or result_type is type(None):
            raise RegistrationError(f"Fixture '{callable_name(fn)}' must declare a return type")
        return cls(fn, result_type, dependencies)

    @property
    def name(self) -> str:
        return callable_name(self.fn)

    def invoke(self, args: list[Any], kwargs: dict[str, Any]) -> Any:
        """Call the underlying function with resolved arguments."""
        return self.fn(*args, **kwargs)

    def provide(self, resolve_arguments: Callable[[], Arguments]) -> Any:
        """Resolve arguments and invoke."""
        args, kwargs = resolve_arguments()
        return self.invoke(args, kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name} -> {type_name(self.result_type)})"


class OnceProvider(Provider):
    """A provider whose body runs at most once for the lifetime of the run.

    The first caller resolves the arguments and runs the body while holding
    the lock; concurrent callers block, then read the memoized result.
    An exception raised by the body is memoized and re-raised.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        result_type: Any,
        dependencies: list[Dependency],
    ) -> None:
        super().__init__(fn, result_type, dependencies)
        self._lock = threading.Lock()
        self._done = False
        self._value: Any = None
        self._error: BaseException | None = None

    @property
    def is_memoized(self) -> bool:
        return self._done

    def provide(self, resolve_arguments: Callable[[], Arguments]) -> Any:
        if not self._done:
            with self._lock:
                if not self._done:
                    # Resolution errors propagate without memoizing.
                    args, kwargs = resolve_arguments()
                    try:
                        self._value = self.invoke(args, kwargs)
                    except Exception as e:
                        self._error = e
                    self._done = True
                    logger.debug("Once-fixture %s memoized", self.name)
        if self._error is not None:
            raise self._error
        return self._value


# =============================================================================
# Fixture Registry
# =============================================================================


class FixtureRegistry:
    """Registry of providers keyed by the type they produce.

    When two providers produce the same type the most recently registered
    one wins; the shadowed provider is logged and kept in ``shadowed``.

    Example:
        >>> registry = FixtureRegistry(reserved_types=[T])
        >>> registry.register(Provider.from_callable(build_widget))
        >>> registry.get(Widget)
        Provider(build_widget -> Widget)
    """

    def __init__(self, reserved_types: Iterable[Any] = ()) -> None:
        """Initialize an empty registry.

        Args:
            reserved_types: Ambient types supplied by the engine; no fixture
                may produce them.
        """
        self._providers: dict[Any, Provider] = {}
        self._reserved = tuple(reserved_types)
        self.shadowed: list[tuple[Provider, Provider]] = []

    def register(self, provider: Provider) -> None:
        """Register a provider.

        Raises:
            RegistrationError: If the provider produces a reserved type.
        """
        result_type = provider.result_type
        if self.is_reserved(result_type):
            raise RegistrationError(
                f"Fixture '{provider.name}' cannot produce '{type_name(result_type)}'"
            )

        existing = self._providers.get(result_type)
        if existing is not None:
            logger.warning(
                "Fixture %s shadows %s for type %s",
                provider.name,
                existing.name,
                type_name(result_type),
            )
            self.shadowed.append((existing, provider))
        self._providers[result_type] = provider

    def is_reserved(self, tp: Any) -> bool:
        """Check whether ``tp`` is (or subclasses) a reserved ambient type."""
        if tp in self._reserved:
            return True
        reserved_classes = tuple(r for r in self._reserved if isinstance(r, type))
        return isinstance(tp, type) and bool(reserved_classes) and issubclass(tp, reserved_classes)

    def get(self, tp: Any) -> Provider:
        """Return the provider for ``tp``.

        Raises:
            MissingDependencyError: If no provider produces ``tp``.
        """
        if tp not in self._providers:
            raise MissingDependencyError(tp)
        return self._providers[tp]

    def has(self, tp: Any) -> bool:
        return tp in self._providers

    def list_all(self) -> list[Provider]:
        """List the active providers in registration order of their type."""
        return list(self._providers.values())

    def clear(self) -> None:
        """Remove all registered providers."""
        self._providers.clear()
        self.shadowed.clear()

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, tp: object) -> bool:
        return self.has(tp)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._providers)

    def __repr__(self) -> str:
        return f"FixtureRegistry({len(self._providers)} fixtures)"


# =============================================================================
# Fixture Resolver
# =============================================================================


class FixtureResolver:
    """Computes fixture instantiation order and validates the fixture graph.

    Performs depth-first search over provider dependencies. Types in
    ``provided`` are ambient values and need no provider. Optional
    parameters without a provider are skipped.

    Example:
        >>> resolver = FixtureResolver()
        >>> resolver.resolve(Session, registry)
        [<class 'Engine'>, <class 'Session'>]
    """

    def resolve(
        self,
        tp: Any,
        registry: FixtureRegistry,
        provided: Iterable[Any] = (),
    ) -> list[Any]:
        """Resolve the dependency chain of ``tp`` in topological order.

        Returns:
            Types to instantiate, dependencies first, ``tp`` last. Empty when
            ``tp`` is provided.

        Raises:
            MissingDependencyError: If a required type has no provider.
            DependencyCycleError: If the graph contains a cycle.
        """
        provided = set(provided)
        if tp in provided:
            return []
        if not registry.has(tp):
            raise MissingDependencyError(tp)

        result: list[Any] = []
        visiting: set[Any] = set()  # Currently in recursion stack (for cycle detection)
        visited: set[Any] = set()  # Completely processed
        self._resolve_recursive(tp, registry, provided, result, visiting, visited, [tp])
        return result

    def _resolve_recursive(
        self,
        tp: Any,
        registry: FixtureRegistry,
        provided: set[Any],
        result: list[Any],
        visiting: set[Any],
        visited: set[Any],
        path: list[Any],
    ) -> None:
        if tp in visited:
            return

        if tp in visiting:
            cycle_start = path.index(tp)
            raise DependencyCycleError(path[cycle_start:])

        visiting.add(tp)

        provider = registry.get(tp)
        for dep in provider.dependencies:
            if dep.type in provided:
                continue
            if not registry.has(dep.type):
                if dep.has_default:
                    continue
                raise MissingDependencyError(dep.type, provider.name)
            self._resolve_recursive(
                dep.type, registry, provided, result, visiting, visited, path + [dep.type]
            )

        visiting.remove(tp)
        visited.add(tp)
        result.append(tp)

    def validate_dependencies(
        self,
        registry: FixtureRegistry,
        provided: Iterable[Any] = (),
    ) -> list[str]:
        """Collect missing-dependency and cycle problems for every fixture.

        Returns:
            Validation error messages. Empty list if the graph is sound.
        """
        provided = set(provided)
        errors: list[str] = []
        for tp in registry:
            try:
                self.resolve(tp, registry, provided)
            except (MissingDependencyError, DependencyCycleError) as e:
                if str(e) not in errors:
                    errors.append(str(e))
        return errors


# =============================================================================
# Resolution Container
# =============================================================================


class ResolutionContainer:
    """Per-test scope that resolves and caches fixture values by type.

    Seed values (the test handle and its labels) are returned as-is and never
    invoke a fixture. Every other type is produced by the registry's provider
    at most once per container; once-fixtures are memoized by their provider
    across all containers.

    Example:
        >>> container = ResolutionContainer(registry, seeds={T: handle})
        >>> container.invoke(test_widget)
    """

    def __init__(
        self,
        registry: FixtureRegistry,
        seeds: Mapping[Any, Any] | None = None,
        resolver: FixtureResolver | None = None,
    ) -> None:
        self._registry = registry
        self._seeds = dict(seeds or {})
        self._resolver = resolver or FixtureResolver()
        self._cache: dict[Any, Any] = {}
        self._resolving: list[Any] = []

    def has(self, tp: Any) -> bool:
        """Check whether ``tp`` can be produced in this container."""
        return tp in self._seeds or tp in self._cache or self._registry.has(tp)

    def is_cached(self, tp: Any) -> bool:
        return tp in self._cache

    def get(self, tp: Any, requested_by: str | None = None) -> Any:
        """Return the value for ``tp``, instantiating fixtures as needed.

        Raises:
            MissingDependencyError: If no fixture produces ``tp``.
            DependencyCycleError: If fixtures depend on each other in a cycle.
        """
        if tp in self._seeds:
            return self._seeds[tp]
        if tp in self._cache:
            return self._cache[tp]
        if not self._registry.has(tp):
            raise MissingDependencyError(tp, requested_by)

        if tp in self._resolving:
            cycle_start = self._resolving.index(tp)
            raise DependencyCycleError(self._resolving[cycle_start:] + [tp])
        if not self._resolving:
            # Validate the whole subgraph before any provider runs, so a cycle
            # never reaches a once-fixture lock.
            self._resolver.resolve(tp, self._registry, self._seeds)

        provider = self._registry.get(tp)
        self._resolving.append(tp)
        try:
            value = provider.provide(
                lambda: self.resolve_dependencies(provider.dependencies, provider.name)
            )
        finally:
            self._resolving.pop()

        self._cache[tp] = value
        return value

    def resolve_dependencies(
        self,
        dependencies: Iterable[Dependency],
        requested_by: str,
    ) -> Arguments:
        """Produce call arguments for ``dependencies``.

        Optional parameters without a provider keep their default.
        """
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        positional_gap = False

        for dep in dependencies:
            if dep.type is EMPTY or not self.has(dep.type):
                if dep.has_default:
                    positional_gap = positional_gap or dep.kind == inspect.Parameter.POSITIONAL_ONLY
                    continue
                if dep.type is EMPTY:
                    raise ResolutionError(
                        f"Parameter '{dep.name}' of '{requested_by}' needs a type annotation"
                    )
                raise MissingDependencyError(dep.type, requested_by)

            value = self.get(dep.type, requested_by)
            if dep.kind == inspect.Parameter.POSITIONAL_ONLY:
                if positional_gap:
                    continue
                args.append(value)
            else:
                kwargs[dep.name] = value

        return args, kwargs

    def resolve(self, fn: Callable[..., Any]) -> Arguments:
        """Resolve the arguments needed to call ``fn``."""
        return self.resolve_dependencies(inspect_dependencies(fn), callable_name(fn))

    def invoke(self, fn: Callable[..., Any]) -> Any:
        """Resolve ``fn``'s parameters and call it."""
        args, kwargs = self.resolve(fn)
        return fn(*args, **kwargs)

    def __repr__(self) -> str:
        return f"ResolutionContainer(cached={len(self._cache)}, seeds={len(self._seeds)})"
