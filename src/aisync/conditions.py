"""Condition expressions for ``when:`` metadata.

Grammar, lowest precedence first::

    or_expr    := and_expr ('||' and_expr)*
    and_expr   := unary ('&&' unary)*
    unary      := '!' unary | primary
    primary    := '(' or_expr ')' | atom
    atom       := namespace ':' key (op literal)?
    op         := '==' | '!=' | '>' | '<' | '>=' | '<='

Comparisons are only allowed on the ``pkg`` and ``var`` namespaces. A blank
expression is always true.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union

from .exceptions import ConditionSyntaxError, UnknownNamespaceError

logger = logging.getLogger(__name__)

DEPENDENCY_NAMESPACES = frozenset(
    {"npm", "pip", "go", "cargo", "composer", "gem", "pub", "maven", "gradle", "nuget"},
)
EXISTENCE_NAMESPACES = frozenset({"file", "dir"})
SCALAR_NAMESPACES = frozenset({"pkg", "var"})
KNOWN_NAMESPACES = DEPENDENCY_NAMESPACES | EXISTENCE_NAMESPACES | SCALAR_NAMESPACES

COMPARISON_OPERATORS = ("==", "!=", ">=", "<=", ">", "<")

_WORD_STOP = set(" \t\r\n&|!=<>()\"'")


class _Absent:
    """Sentinel for a fact the project does not have."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class FactContext(Protocol):
    """Read-only view of project facts."""

    def resolve(self, namespace: str, key: str) -> Any:
        """Return the fact value, or ``ABSENT`` when the project lacks it."""


class StaticFactContext:
    """Fact context backed by a plain mapping of namespace to facts."""

    def __init__(self, facts: dict[str, dict[str, Any]] | None = None) -> None:
        self._facts = {ns: dict(values) for ns, values in (facts or {}).items()}

    def resolve(self, namespace: str, key: str) -> Any:
        return self._facts.get(namespace, {}).get(key, ABSENT)

    def __repr__(self) -> str:
        return f"StaticFactContext({self._facts!r})"


class TokenType(str, Enum):
    """Lexical token kinds."""

    OR = "||"
    AND = "&&"
    NOT = "!"
    LPAREN = "("
    RPAREN = ")"
    OP = "op"
    WORD = "word"
    STRING = "string"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    position: int
    # True when no whitespace separates this token from the previous one.
    adjacent: bool = False


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        ConditionSyntaxError: On characters that cannot start a token
    """
    tokens: list[Token] = []
    i = 0
    length = len(expression)
    adjacent = False
    while i < length:
        ch = expression[i]
        if ch.isspace():
            i += 1
            adjacent = False
            continue

        two = expression[i : i + 2]
        if two == "||":
            tokens.append(Token(TokenType.OR, two, i, adjacent))
            i += 2
        elif two == "&&":
            tokens.append(Token(TokenType.AND, two, i, adjacent))
            i += 2
        elif two in ("==", "!=", ">=", "<="):
            tokens.append(Token(TokenType.OP, two, i, adjacent))
            i += 2
        elif ch in "<>":
            tokens.append(Token(TokenType.OP, ch, i, adjacent))
            i += 1
        elif ch == "!":
            tokens.append(Token(TokenType.NOT, ch, i, adjacent))
            i += 1
        elif ch == "(":
            tokens.append(Token(TokenType.LPAREN, ch, i, adjacent))
            i += 1
        elif ch == ")":
            tokens.append(Token(TokenType.RPAREN, ch, i, adjacent))
            i += 1
        elif ch in "\"'":
            end = expression.find(ch, i + 1)
            if end == -1:
                msg = "Unterminated string literal"
                raise ConditionSyntaxError(msg, expression, i)
            tokens.append(Token(TokenType.STRING, expression[i + 1 : end], i, adjacent))
            i = end + 1
        elif ch in "&|=":
            msg = f"Unexpected '{ch}'"
            if ch == "=":
                msg += " (did you mean '=='?)"
            else:
                msg += f" (did you mean '{ch * 2}'?)"
            raise ConditionSyntaxError(msg, expression, i)
        else:
            start = i
            while i < length and expression[i] not in _WORD_STOP:
                i += 1
            tokens.append(Token(TokenType.WORD, expression[start:i], start, adjacent))
            adjacent = True
            continue
        adjacent = True
    tokens.append(Token(TokenType.EOF, "", length, False))
    return tokens


@dataclass(frozen=True)
class Fact:
    """A bare fact test, e.g. ``npm:react``."""

    namespace: str
    key: str
    position: int = 0


@dataclass(frozen=True)
class Comparison:
    """A scalar comparison, e.g. ``pkg:type == "module"``."""

    namespace: str
    key: str
    operator: str
    value: Any
    position: int = 0


@dataclass(frozen=True)
class Not:
    operand: Node


@dataclass(frozen=True)
class And:
    operands: tuple[Node, ...]


@dataclass(frozen=True)
class Or:
    operands: tuple[Node, ...]


Node = Union[Fact, Comparison, Not, And, Or]


def parse_literal(text: str) -> Any:
    """Interpret a bare literal: booleans, numbers, otherwise the text itself."""
    if text == "true":
        return True
    if text == "false":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def _error(self, message: str, token: Token | None = None) -> ConditionSyntaxError:
        token = token or self.current
        return ConditionSyntaxError(message, self.expression, token.position)

    def parse(self) -> Node:
        node = self._or()
        if self.current.type != TokenType.EOF:
            raise self._error(f"Unexpected '{self.current.text}'")
        return node

    def _or(self) -> Node:
        operands = [self._and()]
        while self.current.type == TokenType.OR:
            self._advance()
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Or(tuple(operands))

    def _and(self) -> Node:
        operands = [self._unary()]
        while self.current.type == TokenType.AND:
            self._advance()
            operands.append(self._unary())
        return operands[0] if len(operands) == 1 else And(tuple(operands))

    def _unary(self) -> Node:
        if self.current.type == TokenType.NOT:
            self._advance()
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.type == TokenType.LPAREN:
            self._advance()
            node = self._or()
            if self.current.type != TokenType.RPAREN:
                raise self._error("Expected ')'")
            self._advance()
            return node
        if token.type == TokenType.WORD:
            return self._atom()
        if token.type == TokenType.EOF:
            raise self._error("Unexpected end of expression", token)
        raise self._error(f"Expected a fact such as 'npm:react', got '{token.text}'")

    def _atom(self) -> Node:
        token = self._advance()
        namespace, sep, key = token.text.partition(":")
        if not sep or not namespace:
            raise self._error(
                f"Expected 'namespace:key', got '{token.text}'",
                token,
            )
        if not key:
            quoted = self.current
            if quoted.type == TokenType.STRING and quoted.adjacent:
                self._advance()
                key = quoted.text
            if not key:
                raise self._error(f"Missing key after '{namespace}:'", token)

        if self.current.type != TokenType.OP:
            return Fact(namespace, key, token.position)

        operator = self._advance()
        if namespace not in SCALAR_NAMESPACES:
            raise self._error(
                f"Comparison '{operator.text}' is only supported for pkg: and var: facts",
                operator,
            )
        literal = self._advance()
        if literal.type == TokenType.STRING:
            value: Any = literal.text
        elif literal.type == TokenType.WORD:
            value = parse_literal(literal.text)
        else:
            raise self._error(f"Expected a value after '{operator.text}'", literal)
        return Comparison(namespace, key, operator.text, value, token.position)


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _loose_equal(actual: Any, expected: Any) -> bool:
    if isinstance(expected, bool):
        if isinstance(actual, bool):
            return actual is expected
        if isinstance(actual, str):
            return actual.strip().lower() == str(expected).lower()
        return False
    if isinstance(expected, (int, float)):
        number = _to_number(actual)
        return number is not None and number == expected
    if isinstance(actual, str):
        return actual == expected
    if isinstance(actual, bool):
        return str(actual).lower() == expected
    if isinstance(actual, (int, float)):
        number = _to_number(expected)
        return number is not None and number == actual
    return str(actual) == expected


def compare(actual: Any, operator: str, expected: Any) -> bool:
    """Apply a comparison operator. Absent facts never compare true."""
    if actual is ABSENT or actual is None:
        return False
    if operator == "==":
        return _loose_equal(actual, expected)
    if operator == "!=":
        return not _loose_equal(actual, expected)

    left = _to_number(actual)
    right = _to_number(expected)
    if left is None or right is None:
        return False
    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    if operator == "<=":
        return left <= right
    msg = f"Unsupported operator: {operator}"
    raise ValueError(msg)


class Condition:
    """A parsed condition expression."""

    def __init__(self, source: str, root: Node | None) -> None:
        self.source = source
        self.root = root

    def __repr__(self) -> str:
        return f"Condition({self.source!r})"

    def facts(self) -> list[tuple[str, str]]:
        """Namespace/key pairs referenced by the expression, in order."""
        found: list[tuple[str, str]] = []
        stack: list[Node] = [self.root] if self.root is not None else []
        while stack:
            node = stack.pop()
            if isinstance(node, (Fact, Comparison)):
                found.append((node.namespace, node.key))
            elif isinstance(node, Not):
                stack.append(node.operand)
            else:
                stack.extend(reversed(node.operands))
        return found

    def evaluate(self, facts: FactContext) -> bool:
        """Evaluate against a fact context.

        Every operand is evaluated so an unknown namespace anywhere in the
        expression is always reported.

        Raises:
            UnknownNamespaceError: If a fact uses an unsupported namespace
        """
        if self.root is None:
            return True
        return _evaluate(self.root, facts)


def _lookup(namespace: str, key: str, facts: FactContext) -> Any:
    if namespace not in KNOWN_NAMESPACES:
        raise UnknownNamespaceError(namespace)
    return facts.resolve(namespace, key)


def _evaluate(node: Node, facts: FactContext) -> bool:
    if isinstance(node, Fact):
        value = _lookup(node.namespace, node.key, facts)
        if value is ABSENT or value is None:
            return False
        if node.namespace in SCALAR_NAMESPACES:
            return bool(value)
        return value is not False
    if isinstance(node, Comparison):
        value = _lookup(node.namespace, node.key, facts)
        return compare(value, node.operator, node.value)
    if isinstance(node, Not):
        return not _evaluate(node.operand, facts)
    results = [_evaluate(operand, facts) for operand in node.operands]
    if isinstance(node, And):
        return all(results)
    return any(results)


def parse_condition(expression: str | None) -> Condition:
    """Parse a condition expression.

    Args:
        expression: Expression text; None or blank means always true

    Returns:
        Parsed condition

    Raises:
        ConditionSyntaxError: If the expression is malformed
    """
    source = (expression or "").strip()
    if not source:
        return Condition("", None)
    return Condition(source, _Parser(source).parse())


class ConditionCache:
    """Parsed conditions keyed by expression text, scoped to its owner."""

    def __init__(self) -> None:
        self._parsed: dict[str, Condition] = {}

    def parse(self, expression: str | None) -> Condition:
        key = (expression or "").strip()
        if key not in self._parsed:
            self._parsed[key] = parse_condition(key)
        return self._parsed[key]

    def __len__(self) -> int:
        return len(self._parsed)


def evaluate_condition(
    expression: str | None,
    facts: FactContext,
    cache: ConditionCache | None = None,
) -> bool:
    """Parse and evaluate a condition in one step.

    Raises:
        ConditionSyntaxError: If the expression is malformed
        UnknownNamespaceError: If a fact uses an unsupported namespace
    """
    condition = cache.parse(expression) if cache is not None else parse_condition(expression)
    result = condition.evaluate(facts)
    logger.debug("Condition %r evaluated to %s", condition.source, result)
    return result
