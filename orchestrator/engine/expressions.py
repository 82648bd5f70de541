# ============================================================================
# EXPRESSION LANGUAGE
# ============================================================================
# STATUS: Core - Restricted expression parser and evaluator
# PURPOSE: Parse {{ }} expressions into an AST; evaluate against a context
# CREATED: 19 OCT 2026
# ============================================================================
"""
Expression Language

A small, side-effect-free expression language used by template markers,
step conditions, forEach sources and the filter/transform control-flow tools.

Grammar:
    expr       := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := not_expr (("&&" | "and") not_expr)*
    not_expr   := ("!" | "not") not_expr | comparison
    comparison := concat (("=="|"==="|"!="|"!=="|">"|">="|"<"|"<=") concat)?
    concat     := primary ("+" primary)*
    primary    := literal | path | "(" expr ")"
    path       := IDENT ("." IDENT | "." INT | "[" INT "]" | "[" STRING "]")*
    literal    := number | 'string' | "string" | true | false | null | undefined

Paths only walk mapping keys and list indexes; a missing segment yields
None instead of raising. `.length` on a list or string is its length.
`||` returns the first truthy operand (else the last) and `&&` the first
falsy one (else the last), so `{{ a.output || b.output }}` works as a
fallback. Truthiness is Python truthiness.

Examples:
    item.score > 0.7
    inputs.mode == 'deep' && search.output.results.length > 0
    {{ rerank.output.results || search.output.results }}
"""

import json
import logging
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterator, List, Mapping, NamedTuple, Optional, Set, Tuple, Union

from orchestrator.engine.errors import ExpressionError

logger = logging.getLogger(__name__)


# ============================================================================
# TEMPLATE MARKERS
# ============================================================================

TEMPLATE_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_SOLE_TEMPLATE = re.compile(r"^\s*\{\{(.*?)\}\}\s*$", re.DOTALL)


def has_template(value: Any) -> bool:
    """Check if a string contains at least one {{ }} marker."""
    return isinstance(value, str) and bool(TEMPLATE_PATTERN.search(value))


def sole_expression(text: str) -> Optional[str]:
    """
    Return the inner expression when the string is exactly one {{ }} marker.

    Surrounding whitespace is tolerated. Returns None for mixed text.
    """
    match = _SOLE_TEMPLATE.match(text)
    if match is None:
        return None
    inner = match.group(1)
    if "{{" in inner or "}}" in inner:
        return None
    return inner.strip()


def to_text(value: Any) -> str:
    """Render a value for substitution into mixed text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


# ============================================================================
# TOKENIZER
# ============================================================================

class Token(NamedTuple):
    kind: str
    value: str
    position: int


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<WS>\s+)
  | (?P<NUMBER>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
  | (?P<STRING>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<OP>===|!==|==|!=|>=|<=|&&|\|\||[><!+()\[\].])
  | (?P<IDENT>[A-Za-z_$][\w$-]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "true", "false", "null", "undefined"}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def tokenize(expression: str) -> List[Token]:
    """Split an expression into tokens, ending with an EOF token."""
    tokens: List[Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            raise ExpressionError(
                expression, f"unexpected character '{expression[position]}'", position
            )
        kind = match.lastgroup
        value = match.group()
        if kind == "IDENT" and value in _KEYWORDS:
            kind = "KEYWORD"
        if kind != "WS":
            tokens.append(Token(kind, value, position))
        position = match.end()
    tokens.append(Token("EOF", "", position))
    return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


# ============================================================================
# AST
# ============================================================================

class Reference(NamedTuple):
    """A root identifier used by an expression."""
    root: str
    # True when the reference sits inside a || alternative (a fallback)
    soft: bool


class Node:
    """Base class for expression AST nodes."""

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def references(self, soft: bool = False) -> Iterator[Reference]:
        return iter(())


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Path(Node):
    """Dotted path: root identifier followed by key and index segments."""
    root: str
    segments: Tuple[Union[str, int], ...] = ()

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        value = context.get(self.root)
        for segment in self.segments:
            if value is None:
                return None
            value = _step_into(value, segment)
        return value

    def references(self, soft: bool = False) -> Iterator[Reference]:
        yield Reference(self.root, soft)

    @property
    def text(self) -> str:
        parts = [self.root]
        for segment in self.segments:
            parts.append(f"[{segment}]" if isinstance(segment, int) else f".{segment}")
        return "".join(parts)


def _step_into(value: Any, segment: Union[str, int]) -> Any:
    if isinstance(segment, int):
        if isinstance(value, (list, tuple, str)):
            return value[segment] if 0 <= segment < len(value) else None
        if isinstance(value, Mapping):
            return value.get(str(segment))
        return None

    if isinstance(value, Mapping):
        if segment in value:
            return value[segment]
        return None
    if segment == "length" and isinstance(value, (list, tuple, str)):
        return len(value)
    return None


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return not self.operand.evaluate(context)

    def references(self, soft: bool = False) -> Iterator[Reference]:
        return self.operand.references(soft)


@dataclass(frozen=True)
class Logical(Node):
    """Short-circuit `or` / `and` returning an operand value."""
    op: str
    operands: Tuple[Node, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        value = None
        for operand in self.operands:
            value = operand.evaluate(context)
            if self.op == "or" and value:
                return value
            if self.op == "and" and not value:
                return value
        return value

    def references(self, soft: bool = False) -> Iterator[Reference]:
        soft = soft or self.op == "or"
        for operand in self.operands:
            yield from operand.references(soft)


_ORDERING = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def _equals(left: Any, right: Any, strict: bool) -> bool:
    if strict and isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


@dataclass(frozen=True)
class Compare(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)

        if self.op in ("==", "==="):
            return _equals(left, right, strict=self.op == "===")
        if self.op in ("!=", "!=="):
            return not _equals(left, right, strict=self.op == "!==")

        # Incomparable values (None, str vs number) are never ordered
        try:
            return bool(_ORDERING[self.op](left, right))
        except TypeError:
            return False

    def references(self, soft: bool = False) -> Iterator[Reference]:
        yield from self.left.references(soft)
        yield from self.right.references(soft)


@dataclass(frozen=True)
class Concat(Node):
    parts: Tuple[Node, ...]

    def evaluate(self, context: Mapping[str, Any]) -> Any:
        return "".join(to_text(part.evaluate(context)) for part in self.parts)

    def references(self, soft: bool = False) -> Iterator[Reference]:
        for part in self.parts:
            yield from part.references(soft)


# ============================================================================
# PARSER
# ============================================================================

_COMPARISON_OPS = {"==", "===", "!=", "!==", ">", ">=", "<", "<="}


class _Parser:
    """Recursive-descent parser over the token list."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *values: str) -> Optional[Token]:
        token = self.current
        if token.kind in ("OP", "KEYWORD") and token.value in values:
            return self._advance()
        return None

    def _expect(self, value: str) -> Token:
        token = self._accept(value)
        if token is None:
            self._fail(f"expected '{value}'")
        return token

    def _fail(self, message: str) -> None:
        token = self.current
        found = token.value if token.kind != "EOF" else "end of expression"
        raise ExpressionError(self.expression, f"{message}, found '{found}'", token.position)

    def parse(self) -> Node:
        if self.current.kind == "EOF":
            raise ExpressionError(self.expression, "empty expression", 0)
        node = self._or()
        if self.current.kind != "EOF":
            self._fail("unexpected token")
        return node

    def _or(self) -> Node:
        operands = [self._and()]
        while self._accept("||", "or"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Logical("or", tuple(operands))

    def _and(self) -> Node:
        operands = [self._not()]
        while self._accept("&&", "and"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else Logical("and", tuple(operands))

    def _not(self) -> Node:
        if self._accept("!", "not"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._concat()
        token = self.current
        if token.kind == "OP" and token.value in _COMPARISON_OPS:
            self._advance()
            return Compare(token.value, left, self._concat())
        return left

    def _concat(self) -> Node:
        parts = [self._primary()]
        while self._accept("+"):
            parts.append(self._primary())
        return parts[0] if len(parts) == 1 else Concat(tuple(parts))

    def _primary(self) -> Node:
        token = self.current

        if self._accept("("):
            node = self._or()
            self._expect(")")
            return node

        if token.kind == "NUMBER":
            self._advance()
            if any(mark in token.value for mark in ".eE"):
                return Literal(float(token.value))
            return Literal(int(token.value))

        if token.kind == "STRING":
            self._advance()
            return Literal(_unquote(token.value))

        if token.kind == "KEYWORD" and token.value in ("true", "false"):
            self._advance()
            return Literal(token.value == "true")

        if token.kind == "KEYWORD" and token.value in ("null", "undefined"):
            self._advance()
            return Literal(None)

        if token.kind == "IDENT":
            self._advance()
            return self._path(token.value)

        self._fail("expected a value")

    def _path(self, root: str) -> Path:
        segments: List[Union[str, int]] = []
        while True:
            if self._accept("."):
                token = self.current
                if token.kind in ("IDENT", "KEYWORD"):
                    segments.append(self._advance().value)
                elif token.kind == "NUMBER" and token.value.replace(".", "").isdigit():
                    # a.0.1 tokenizes its tail as the number "0.1"
                    segments.extend(int(part) for part in self._advance().value.split("."))
                else:
                    self._fail("expected a property name")
            elif self._accept("["):
                token = self.current
                if token.kind == "NUMBER" and token.value.isdigit():
                    segments.append(int(self._advance().value))
                elif token.kind == "STRING":
                    segments.append(_unquote(self._advance().value))
                else:
                    self._fail("expected an integer index or quoted key")
                self._expect("]")
            else:
                return Path(root, tuple(segments))


@lru_cache(maxsize=1024)
def parse_expression(expression: str) -> Node:
    """
    Parse an expression (without {{ }} markers) into an AST.

    Raises:
        ExpressionError: If the expression is malformed
    """
    return _Parser(expression.strip()).parse()


# ============================================================================
# EVALUATION
# ============================================================================

def render_text(text: str, context: Mapping[str, Any]) -> str:
    """
    Substitute every {{ }} marker in mixed text.

    Raises:
        ExpressionError: If any marker holds a malformed expression
    """
    return TEMPLATE_PATTERN.sub(
        lambda match: to_text(parse_expression(match.group(1)).evaluate(context)),
        text,
    )


def _to_literal(value: Any) -> str:
    """Render a value as expression source so it keeps its type when reparsed."""
    if isinstance(value, (dict, list)):
        return json.dumps(json.dumps(value, default=str)) if value else "null"
    if isinstance(value, (str, bool, int, float)) or value is None:
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def render_condition_text(text: str, context: Mapping[str, Any]) -> str:
    """Substitute every {{ }} marker with a literal of the same type."""
    return TEMPLATE_PATTERN.sub(
        lambda match: f" {_to_literal(parse_expression(match.group(1)).evaluate(context))} ",
        text,
    )


def evaluate_expression(expression: Any, context: Mapping[str, Any]) -> Any:
    """
    Evaluate a value-producing expression.

    Accepts a bare expression ("item.title"), a single {{ }} marker
    (typed result) or mixed text (rendered string). Non-strings pass through.
    """
    if not isinstance(expression, str):
        return expression

    inner = sole_expression(expression)
    if inner is not None:
        return parse_expression(inner).evaluate(context)
    if has_template(expression):
        return render_text(expression, context)
    return parse_expression(expression).evaluate(context)


def evaluate_condition(expression: Any, context: Mapping[str, Any]) -> bool:
    """
    Evaluate a condition to a bool.

    A bare expression or a single {{ }} marker is parsed directly. Mixed
    text ("{{ search.output.count }} > 3") is rendered first, each marker
    becoming a literal of its value's type, and the rendered text is then
    parsed as an expression.

    Raises:
        ExpressionError: If the expression is malformed
    """
    if not isinstance(expression, str):
        return bool(expression)

    inner = sole_expression(expression)
    if inner is not None:
        return bool(parse_expression(inner).evaluate(context))
    if has_template(expression):
        rendered = render_condition_text(expression, context)
        return bool(parse_expression(rendered).evaluate(context))
    return bool(parse_expression(expression).evaluate(context))


# ============================================================================
# REFERENCE SCANNING
# ============================================================================

def _expression_references(expression: str, strict: bool) -> List[Reference]:
    try:
        return list(parse_expression(expression).references())
    except ExpressionError:
        if strict:
            raise
        logger.debug(f"Ignoring unparseable expression while scanning: {expression!r}")
        return []


def iter_template_expressions(value: Any) -> Iterator[str]:
    """Yield the inner text of every {{ }} marker in a nested value."""
    if isinstance(value, str):
        for match in TEMPLATE_PATTERN.finditer(value):
            yield match.group(1)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_template_expressions(item)
    elif isinstance(value, list):
        for item in value:
            yield from iter_template_expressions(item)


def scan_references(value: Any, bare: bool = False, strict: bool = False) -> List[Reference]:
    """
    Collect root references from a value.

    Args:
        value: String or nested structure holding {{ }} markers
        bare: Treat a marker-free string as a bare expression (conditions,
            forEach, filter/transform expressions)
        strict: Raise ExpressionError instead of ignoring malformed markers

    Returns:
        References in encounter order (duplicates possible)
    """
    references: List[Reference] = []

    if isinstance(value, str) and bare:
        if not has_template(value):
            if value.strip():
                references.extend(_expression_references(value, strict))
            return references
        if sole_expression(value) is None:
            # Mixed condition text is parsed after rendering, so its plain
            # parts can hold paths too
            residue = TEMPLATE_PATTERN.sub(" null ", value)
            references.extend(_expression_references(residue, strict=False))

    for expression in iter_template_expressions(value):
        references.extend(_expression_references(expression, strict))
    return references


def extract_references(value: Any, bare: bool = False) -> Set[str]:
    """Return the set of root identifiers referenced by a value."""
    return {reference.root for reference in scan_references(value, bare=bare)}


def check_syntax(value: Any, bare: bool = False) -> List[str]:
    """
    Return an error message per malformed expression in a value.

    Used by the validator; never raises.
    """
    errors: List[str] = []
    if isinstance(value, str) and bare and not has_template(value):
        if not value.strip():
            return ["empty expression"]
        try:
            parse_expression(value)
        except ExpressionError as e:
            errors.append(str(e))
        return errors

    for expression in iter_template_expressions(value):
        try:
            parse_expression(expression)
        except ExpressionError as e:
            errors.append(str(e))
    return errors


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "TEMPLATE_PATTERN",
    "Token",
    "Reference",
    "Node",
    "Literal",
    "Path",
    "Not",
    "Logical",
    "Compare",
    "Concat",
    "tokenize",
    "parse_expression",
    "has_template",
    "sole_expression",
    "to_text",
    "render_text",
    "render_condition_text",
    "evaluate_expression",
    "evaluate_condition",
    "iter_template_expressions",
    "scan_references",
    "extract_references",
    "check_syntax",
]
