"""Strudel code validator — static checks, no evaluation.

Parses the candidate program with the tree-sitter JavaScript grammar
(current ECMAScript, including ``??`` and ``?.``) and, if it parses,
walks the syntax tree for call sites:

1. syntax           — one error, short-circuits everything else
2. required         — setcps() tempo (error), playable expression (warning)
3. hallucinations   — calls that do not exist in Strudel (error per name)
4. hygiene          — advisory warnings only
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

JS_LANGUAGE = Language(tree_sitter_javascript.language())

TEMPO_CALLS = frozenset({"setcps", "setcpm"})

PLAYABLE_CALLS = frozenset(
    {"stack", "arrange", "cat", "seq", "fastcat", "slowcat", "polymeter"}
)

# name -> what to use instead
HALLUCINATED_CALLS: dict[str, str] = {
    "glide": "Strudel has no pitch glide; use separate notes or .penv()",
    "portamento": "Strudel has no portamento; use separate notes or .penv()",
    "slide": "Strudel has no slide; use separate notes or .penv()",
    "volume": "use .gain() for volume",
    "tempo": "set BPM with setcps(BPM/4/60)",
}

SOUND_CALLS = frozenset({"s", "sound"})

MAX_CHAIN_LENGTH = 8

_BARE_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
_EMPTY_ASSIGNMENT = re.compile(
    r"\b(?:let|const|var)\s+([A-Za-z_$][\w$]*)\s*=\s*"
    r"(?:\"\"|''|``|\[\s*\]|(?:s|sound|note|n)\(\s*(?:\"\"|''|``)\s*\))"
)
_FENCED_CODE = re.compile(r"```(?:javascript|js)?\n([\s\S]*?)```")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass
class _CallSites:
    """Facts collected from one walk over the syntax tree."""

    calls: list[str] = field(default_factory=list)
    identifiers: set[str] = field(default_factory=set)
    declared: set[str] = field(default_factory=set)
    unquoted_sounds: list[tuple[str, str]] = field(default_factory=list)
    arrange_sections: list[list[str]] = field(default_factory=list)
    longest_chain: int = 0

    def collect(self, root: Node) -> None:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "call_expression":
                self._visit_call(node)
            elif node.type in ("identifier", "undefined"):
                self.identifiers.add(_text(node))
            elif node.type == "variable_declarator":
                name = node.child_by_field_name("name")
                if name is not None and name.type == "identifier":
                    self.declared.add(_text(name))
            # reversed so calls are recorded in source order
            stack.extend(reversed(node.children))

    def _visit_call(self, node: Node) -> None:
        callee = node.child_by_field_name("function")
        name = _callee_name(callee)
        if name is None:
            return
        self.calls.append(name)
        self.longest_chain = max(self.longest_chain, _chain_length(node))

        arguments = node.child_by_field_name("arguments")
        if arguments is None or arguments.type != "arguments":
            return
        args = _elements(arguments)

        if name in SOUND_CALLS and args and args[0].type == "identifier":
            self.unquoted_sounds.append((name, _text(args[0])))

        if name == "arrange" and callee.type == "identifier":
            sections = []
            for arg in args:
                elements = _elements(arg) if arg.type == "array" else []
                if len(elements) >= 2 and elements[1].type == "identifier":
                    sections.append(_text(elements[1]))
            self.arrange_sections.append(sections)


def _text(node: Node) -> str:
    return node.text.decode("utf-8")


def _elements(node: Node) -> list[Node]:
    return [child for child in node.named_children if child.type != "comment"]


def _callee_name(callee: Node | None) -> str | None:
    if callee is None:
        return None
    if callee.type == "identifier":
        return _text(callee)
    if callee.type == "member_expression":
        prop = callee.child_by_field_name("property")
        if prop is not None and prop.type == "property_identifier":
            return _text(prop)
    return None


def _chain_length(node: Node) -> int:
    """Number of method calls in the chain ending at *node*."""
    length = 0
    while node is not None and node.type == "call_expression":
        callee = node.child_by_field_name("function")
        if callee is None or callee.type != "member_expression":
            break
        length += 1
        node = callee.child_by_field_name("object")
    return length


def _first_syntax_error(root: Node) -> Node | None:
    """Leftmost ERROR or MISSING node, or None when the tree is clean."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        stack.extend(
            child for child in reversed(node.children) if child.has_error or child.is_missing
        )
    return None


def _describe_syntax_error(node: Node, source: bytes) -> str:
    row, byte_column = node.start_point
    line = source.split(b"\n")[row]
    column = len(line[:byte_column].decode("utf-8", errors="ignore")) + 1

    if node.is_missing:
        message = f'Expected "{node.type}"'
    else:
        token = _text(node).split(maxsplit=1)
        message = f'Unexpected token "{token[0][:20]}"' if token else "Unexpected end of input"
    return f"Syntax error (line {row + 1}, col {column}): {message}"


def _ends_with_playable_line(code: str) -> bool:
    lines = [line.strip() for line in code.splitlines() if line.strip()]
    if not lines:
        return False
    last = lines[-1].rstrip(";").rstrip()
    return last.endswith(")") or bool(_BARE_IDENTIFIER.match(last))


def validate_strudel_code(code: str) -> ValidationResult:
    """Statically check a Strudel program and return errors and warnings."""
    source = code.encode("utf-8")
    tree = Parser(JS_LANGUAGE).parse(source)
    if tree.root_node.has_error:
        broken = _first_syntax_error(tree.root_node) or tree.root_node
        return ValidationResult(valid=False, errors=(_describe_syntax_error(broken, source),))

    sites = _CallSites()
    sites.collect(tree.root_node)

    errors: list[str] = []
    warnings: list[str] = []
    called = set(sites.calls)

    if not called & TEMPO_CALLS:
        errors.append(
            "Missing tempo - set BPM using setcps(BPM/4/60), "
            "e.g. setcps(130/4/60) for 130 BPM"
        )

    if not called & PLAYABLE_CALLS and not _ends_with_playable_line(code):
        warnings.append(
            "Code may not have a playable expression. "
            "Ensure it ends with stack(), arrange(), or a pattern."
        )

    reported: set[str] = set()
    for name in sites.calls:
        if name in HALLUCINATED_CALLS and name not in reported:
            reported.add(name)
            errors.append(
                f"Unknown function {name}() does not exist in Strudel - "
                f"{HALLUCINATED_CALLS[name]}"
            )

    if "undefined" in sites.identifiers:
        warnings.append(
            'Code contains "undefined" - check variable names are defined before use'
        )

    for match in _EMPTY_ASSIGNMENT.finditer(code):
        warnings.append(f"Found empty assignment: {match.group(1)} has no pattern content")

    for name, arg in sites.unquoted_sounds:
        if arg not in sites.declared:
            warnings.append(
                f'Pattern {name}({arg}) might be missing quotes. Use {name}("{arg}") not {name}({arg})'
            )

    if sites.longest_chain > MAX_CHAIN_LENGTH:
        warnings.append("Consider breaking long method chains into variables for readability")

    for sections in sites.arrange_sections:
        if len(sections) > 2 and len(set(sections)) < len(sections) / 2:
            warnings.append(
                "Anti-pattern: Same sections repeated in arrange(). Add variation between drops!"
            )

    return ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


def extract_code_from_markdown(content: str) -> str | None:
    """Return the first fenced javascript block in *content*, or None."""
    match = _FENCED_CODE.search(content)
    return match.group(1).strip() if match else None


def format_validation_result(result: ValidationResult) -> str:
    """Render a result as the report fed back to the model."""
    lines: list[str] = []

    if result.valid:
        lines.append("✓ Code is valid!")
    else:
        lines.append("✗ Validation failed:")
        lines.extend(f"  - {error}" for error in result.errors)

    if result.warnings:
        lines.append("\nWarnings:")
        lines.extend(f"  ⚠ {warning}" for warning in result.warnings)

    return "\n".join(lines)
