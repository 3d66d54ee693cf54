"""
Python source scanner for directive discovery.

Uses tree-sitter for fast, accurate Python AST parsing.
Extracts top-level function declarations together with the comment block
attached to them, plus every raw comment block in the file for file-scope
directives.
"""

from dataclasses import dataclass, field
from pathlib import Path

import tree_sitter_python as ts_python
from tree_sitter import Language, Node, Parser

# Initialize tree-sitter Python language
PY_LANGUAGE = Language(ts_python.language())

DEFAULT_FILE_PATTERN = "test_*.py"


@dataclass(frozen=True)
class SourceLocation:
    """Location in source code."""
    file_path: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int


@dataclass(frozen=True)
class Parameter:
    """Function parameter as written in source."""
    name: str
    type_annotation: str | None = None
    default_value: str | None = None
    is_required: bool = True


@dataclass(frozen=True)
class Signature:
    """Ordered parameter and result types of a declared function."""
    parameters: tuple[Parameter, ...] = ()
    result_types: tuple[str, ...] = ()

    @property
    def parameter_types(self) -> tuple[str | None, ...]:
        """Annotation text of each parameter, None when unannotated."""
        return tuple(p.type_annotation for p in self.parameters)


@dataclass(frozen=True)
class DeclaredFunction:
    """
    A top-level function found by the scanner.

    ``doc_comment`` holds the ``#`` comment block directly above the
    definition (markers stripped), followed by the docstring when present.
    """
    qualified_name: str
    signature: Signature = field(default_factory=Signature)
    doc_comment: str = ""
    module: str = ""
    package: str = ""
    is_async: bool = False
    location: SourceLocation | None = None

    @property
    def name(self) -> str:
        """Unqualified function name."""
        return self.qualified_name.rsplit(".", 1)[-1]

    @property
    def file_path(self) -> str | None:
        """Source file of the declaration, when known."""
        return self.location.file_path if self.location else None


@dataclass
class ScanResult:
    """
    Scanner output for one file or a whole directory.

    Functions and comment blocks are ordered by file path, then by position
    in the file, so repeated scans of unchanged input are identical.
    """
    root: str
    functions: list[DeclaredFunction] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    syntax_errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if scanning encountered any errors."""
        return len(self.errors) > 0 or len(self.syntax_errors) > 0

    def get_function_by_name(self, name: str) -> DeclaredFunction | None:
        """Get a function by its unqualified or qualified name."""
        for func in self.functions:
            if name in (func.name, func.qualified_name):
                return func
        return None

    def extend(self, other: "ScanResult") -> None:
        """Append another scan result, keeping order."""
        self.functions.extend(other.functions)
        self.comments.extend(other.comments)
        self.files.extend(other.files)
        self.errors.extend(other.errors)
        self.syntax_errors.extend(other.syntax_errors)


class PythonParser:
    """
    Tree-sitter based scanner producing declared-function records.

    Usage:
        parser = PythonParser()
        result = parser.parse_file("test_widgets.py")
        # or
        result = parser.scan_directory("tests/", pattern="test_*.py")
    """

    def __init__(self):
        """Initialize the parser with tree-sitter Python language."""
        self._parser = Parser(PY_LANGUAGE)

    def scan_directory(
        self,
        directory: str | Path,
        pattern: str = DEFAULT_FILE_PATTERN,
    ) -> ScanResult:
        """
        Scan every file in ``directory`` matching ``pattern`` (non-recursive).

        Raises:
            NotADirectoryError: If the path is not a directory
        """
        path = Path(directory)
        if not path.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")

        result = ScanResult(root=str(path))
        for file_path in sorted(path.glob(pattern)):
            if file_path.is_file():
                result.extend(self.parse_file(file_path))
        return result

    def parse_file(self, file_path: str | Path) -> ScanResult:
        """
        Parse a Python file and extract declared functions and comments.

        Args:
            file_path: Path to the Python file

        Returns:
            ScanResult for the file

        Raises:
            FileNotFoundError: If file does not exist
            PermissionError: If file cannot be read
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        source_code = path.read_text(encoding="utf-8")
        package = path.resolve().parent.name
        return self.parse_string(source_code, str(path), module=path.stem, package=package)

    def parse_string(
        self,
        source_code: str,
        file_name: str = "<string>",
        module: str | None = None,
        package: str = "",
    ) -> ScanResult:
        """
        Parse Python source code string.

        Args:
            source_code: Python source code
            file_name: Name to use for source location reporting
            module: Module name used to qualify function names
            package: Package identifier recorded on each function

        Returns:
            ScanResult with the extracted functions and comment blocks
        """
        if module is None:
            module = Path(file_name).stem if file_name != "<string>" else "__main__"

        result = ScanResult(root=file_name, files=[file_name])
        source = source_code.encode("utf-8")
        source_lines = source_code.split("\n")

        tree = self._parser.parse(source)
        root = tree.root_node

        if root.has_error:
            result.errors.append(f"Syntax error detected in {file_name}")
            self._collect_errors(root, result.syntax_errors)

        module_docstring = self._extract_module_docstring(root, source)
        if module_docstring:
            result.comments.append(module_docstring)
        result.comments.extend(self._collect_comment_blocks(root, source))

        for child in root.children:
            if child.type in ("function_definition", "decorated_definition"):
                func = self._parse_declaration(
                    child, source, source_lines, file_name, module, package
                )
                if func:
                    result.functions.append(func)

        return result

    def _collect_errors(self, node: Node, errors: list[str]) -> None:
        """Recursively collect error nodes."""
        if node.type == "ERROR":
            start = node.start_point
            errors.append(f"Syntax error at line {start[0] + 1}, column {start[1]}")
        for child in node.children:
            self._collect_errors(child, errors)

    def _collect_comment_blocks(self, root: Node, source: bytes) -> list[str]:
        """Group every comment in the file into blocks of consecutive lines."""
        comments: list[Node] = []
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "comment":
                comments.append(node)
            stack.extend(reversed(node.children))
        comments.sort(key=lambda n: n.start_byte)

        blocks: list[list[str]] = []
        last_row = -2
        for node in comments:
            row = node.start_point[0]
            text = self._strip_comment(self._get_node_text(node, source))
            if row == last_row + 1 and blocks:
                blocks[-1].append(text)
            else:
                blocks.append([text])
            last_row = row
        return ["\n".join(block) for block in blocks]

    def _leading_comment(self, node: Node, source_lines: list[str]) -> str:
        """Return the comment block directly above ``node``, if any."""
        # Read raw lines: tree-sitter may attach a dedented comment to the
        # previous definition's block instead of making it a sibling.
        # Only comments at the def's own column belong to it.
        lines: list[str] = []
        column = node.start_point[1]
        row = node.start_point[0] - 1
        while row >= 0:
            line = source_lines[row]
            stripped = line.lstrip()
            if not stripped.startswith("#") or len(line) - len(stripped) != column:
                break
            lines.append(self._strip_comment(line))
            row -= 1
        return "\n".join(reversed(lines))

    def _parse_declaration(
        self,
        node: Node,
        source: bytes,
        source_lines: list[str],
        file_name: str,
        module: str,
        package: str,
    ) -> DeclaredFunction | None:
        """Parse a (possibly decorated) top-level function definition."""
        definition = node
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            if definition is None or definition.type != "function_definition":
                return None

        name_node = definition.child_by_field_name("name")
        if name_node is None:
            return None
        name = self._get_node_text(name_node, source)

        parameters: tuple[Parameter, ...] = ()
        params_node = definition.child_by_field_name("parameters")
        if params_node is not None:
            parameters = tuple(self._parse_parameters(params_node, source))

        result_types: tuple[str, ...] = ()
        return_node = definition.child_by_field_name("return_type")
        if return_node is not None:
            result_types = (self._get_node_text(return_node, source),)

        docstring = None
        body = definition.child_by_field_name("body")
        if body is not None:
            docstring = self._extract_docstring(body, source)

        comment_parts = [self._leading_comment(node, source_lines), docstring or ""]
        doc_comment = "\n".join(part for part in comment_parts if part)

        return DeclaredFunction(
            qualified_name=f"{module}.{name}",
            signature=Signature(parameters=parameters, result_types=result_types),
            doc_comment=doc_comment,
            module=module,
            package=package,
            is_async=any(child.type == "async" for child in definition.children),
            location=self._get_location(node, file_name),
        )

    def _parse_parameters(self, node: Node, source: bytes) -> list[Parameter]:
        """Parse function parameters."""
        params: list[Parameter] = []

        for child in node.children:
            if child.type == "identifier":
                params.append(Parameter(name=self._get_node_text(child, source)))
            elif child.type == "typed_parameter":
                name = None
                type_ann = None
                for sub in child.children:
                    if sub.type == "identifier":
                        name = self._get_node_text(sub, source)
                    elif sub.type == "type":
                        type_ann = self._get_node_text(sub, source)
                if name:
                    params.append(Parameter(name=name, type_annotation=type_ann))
            elif child.type in ("default_parameter", "typed_default_parameter"):
                name_node = child.child_by_field_name("name")
                type_node = child.child_by_field_name("type")
                value_node = child.child_by_field_name("value")
                if name_node is None:
                    continue
                params.append(Parameter(
                    name=self._get_node_text(name_node, source),
                    type_annotation=self._get_node_text(type_node, source) if type_node else None,
                    default_value=self._get_node_text(value_node, source) if value_node else None,
                    is_required=False,
                ))

        return params

    def _extract_module_docstring(self, root: Node, source: bytes) -> str | None:
        """Extract module-level docstring if present."""
        for child in root.children:
            if child.type == "expression_statement":
                for expr in child.children:
                    if expr.type == "string":
                        return self._clean_docstring(self._get_node_text(expr, source))
                break
            elif child.type not in ("comment", "newline"):
                break
        return None

    def _extract_docstring(self, block_node: Node, source: bytes) -> str | None:
        """Extract docstring from a block node."""
        for child in block_node.children:
            if child.type == "expression_statement":
                for expr in child.children:
                    if expr.type == "string":
                        return self._clean_docstring(self._get_node_text(expr, source))
                break
            elif child.type not in ("newline", "indent", "dedent", "comment"):
                break
        return None

    def _clean_docstring(self, docstring: str) -> str:
        """Clean docstring by removing quotes and extra whitespace."""
        for prefix in ("r", "R", "u", "U"):
            if docstring.startswith(prefix):
                docstring = docstring[1:]
                break
        # Remove triple quotes
        if docstring.startswith('"""') and docstring.endswith('"""'):
            docstring = docstring[3:-3]
        elif docstring.startswith("'''") and docstring.endswith("'''"):
            docstring = docstring[3:-3]
        elif docstring.startswith('"') and docstring.endswith('"'):
            docstring = docstring[1:-1]
        elif docstring.startswith("'") and docstring.endswith("'"):
            docstring = docstring[1:-1]
        lines = [line.strip() for line in docstring.strip().splitlines()]
        return "\n".join(lines)

    def _strip_comment(self, text: str) -> str:
        """Remove the leading ``#`` marker and one following space."""
        text = text.lstrip()
        if text.startswith("#"):
            text = text[1:]
        if text.startswith(" "):
            text = text[1:]
        return text.rstrip()

    def _get_node_text(self, node: Node, source: bytes) -> str:
        """Get the text content of a node."""
        return source[node.start_byte:node.end_byte].decode("utf-8")

    def _get_location(self, node: Node, file_name: str) -> SourceLocation:
        """Get source location for a node."""
        start = node.start_point
        end = node.end_point
        return SourceLocation(
            file_path=file_name,
            start_line=start[0] + 1,  # 1-indexed
            start_column=start[1],
            end_line=end[0] + 1,
            end_column=end[1],
        )


# Convenience functions
def parse_python_file(file_path: str | Path) -> ScanResult:
    """
    Parse a Python file and extract declared functions.

    Convenience function that creates a parser and parses the file.
    """
    parser = PythonParser()
    return parser.parse_file(file_path)


def parse_python_string(source_code: str, file_name: str = "<string>") -> ScanResult:
    """
    Parse Python source code string.

    Convenience function that creates a parser and parses the string.
    """
    parser = PythonParser()
    return parser.parse_string(source_code, file_name)


def scan_directory(directory: str | Path, pattern: str = DEFAULT_FILE_PATTERN) -> ScanResult:
    """Scan a directory for declared functions and comment blocks."""
    parser = PythonParser()
    return parser.scan_directory(directory, pattern)
