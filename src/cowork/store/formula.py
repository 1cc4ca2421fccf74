#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""An interpreter for the formula language used to filter records on the
record store side. The language is the subset of Airtable formulas this
package relies on:

    AND(
        FIND('recRoom1', ARRAYJOIN({Room})) > 0,
        {Status} = 'Confirmed',
        IS_BEFORE({Start}, '2024-08-10T17:00:00.000Z')
    )

Values interpolated into a formula must go through `escape_formula_string`
(or `quote_formula_string`), otherwise a quote in the value could end the
string literal and inject arbitrary conditions.
"""

import datetime
import functools
import operator
import re
from typing import Any, Callable, NamedTuple

from cowork.exceptions import FormulaError
from cowork.store.record_store import Record
from cowork.time_utils import parse_instant, to_iso

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


def escape_formula_string(value: Any) -> str:
    """Escape a value for use inside a quoted formula string. Returns an
    empty string for empty or non-string input."""
    if not value or not isinstance(value, str):
        return ""
    return "".join(_ESCAPES.get(char, char) for char in value)


def quote_formula_string(value: Any) -> str:
    """Escape `value` and wrap it in single quotes."""
    return f"'{escape_formula_string(value)}'"


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<field>\{[^}]*\})
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<number>\d+(?:\.\d+)?)
    |(?P<op><=|>=|!=|<>|=|<|>|&)
    |(?P<punct>[(),])
    |(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE | re.DOTALL,
)


class Token(NamedTuple):
    kind: str
    text: str
    position: int


class Constant(NamedTuple):
    value: Any


class FieldRef(NamedTuple):
    name: str


class Call(NamedTuple):
    name: str
    args: tuple


class BinaryOp(NamedTuple):
    op: str
    left: Any
    right: Any


Node = Constant | FieldRef | Call | BinaryOp


def _tokenize(formula: str) -> list[Token]:
    tokens = []
    position = 0
    while position < len(formula):
        match = _TOKEN_PATTERN.match(formula, position)
        if match is None:
            raise FormulaError(
                f"Unexpected character {formula[position]!r} at position {position}"
            )
        if match.lastgroup != "ws":
            tokens.append(Token(match.lastgroup, match.group(), position))
        position = match.end()
    return tokens


def _unescape(body: str) -> str:
    return re.sub(
        r"\\(.)",
        lambda m: _UNESCAPES.get(m.group(1), m.group(1)),
        body,
        flags=re.DOTALL,
    )


class _Parser:
    """Recursive descent parser. Comparisons bind loosest, then `&`
    concatenation, then literals, field references, calls and parentheses."""

    def __init__(self, formula: str):
        self._formula = formula
        self._tokens = _tokenize(formula)
        self._index = 0

    def parse(self) -> Node:
        node = self._comparison()
        if (token := self._peek()) is not None:
            raise FormulaError(
                f"Unexpected {token.text!r} at position {token.position} "
                f"in formula {self._formula!r}"
            )
        return node

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise FormulaError(f"Unexpected end of formula {self._formula!r}")
        self._index += 1
        return token

    def _accept(self, text: str) -> bool:
        token = self._peek()
        if token is not None and token.text == text:
            self._index += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        token = self._advance()
        if token.text != text:
            raise FormulaError(
                f"Expected {text!r} but found {token.text!r} at position {token.position}"
            )

    def _comparison(self) -> Node:
        left = self._concat()
        while (token := self._peek()) is not None and token.kind == "op":
            if token.text == "&":
                break
            self._advance()
            op = "!=" if token.text == "<>" else token.text
            left = BinaryOp(op, left, self._concat())
        return left

    def _concat(self) -> Node:
        left = self._primary()
        while self._accept("&"):
            left = BinaryOp("&", left, self._primary())
        return left

    def _primary(self) -> Node:
        token = self._advance()
        match token.kind:
            case "string":
                return Constant(_unescape(token.text[1:-1]))
            case "number":
                if "." in token.text:
                    return Constant(float(token.text))
                return Constant(int(token.text))
            case "field":
                return FieldRef(token.text[1:-1])
            case "ident":
                return self._call(token)
            case "punct" if token.text == "(":
                node = self._comparison()
                self._expect(")")
                return node
        raise FormulaError(f"Unexpected {token.text!r} at position {token.position}")

    def _call(self, token: Token) -> Call:
        name = token.text.upper()
        if name not in _FUNCTIONS:
            raise FormulaError(f"Unknown function {token.text!r}")
        self._expect("(")
        args = []
        if not self._accept(")"):
            while True:
                args.append(self._comparison())
                if self._accept(")"):
                    break
                self._expect(",")
        return Call(name, tuple(args))


@functools.lru_cache(maxsize=256)
def parse_formula(formula: str) -> Node:
    """Parse `formula` into a syntax tree.

    Raises
    ------
    FormulaError if the formula is malformed or calls an unknown function.
    """
    return _Parser(formula).parse()


def _truthy(value: Any) -> bool:
    if isinstance(value, list):
        return bool(value)
    return value not in (None, "", 0, False)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(_as_text(v) for v in value)
    if isinstance(value, datetime.datetime):
        return to_iso(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_instant(value: Any) -> datetime.datetime | None:
    if value is None or value == "":
        return None
    try:
        return parse_instant(value)
    except (ValueError, TypeError):
        raise FormulaError(f"Cannot interpret {value!r} as a date")


def _coerce(left: Any, right: Any) -> tuple[Any, Any]:
    if left is None and isinstance(right, str):
        return "", right
    if right is None and isinstance(left, str):
        return left, ""
    if isinstance(left, list):
        left = _as_text(left)
    if isinstance(right, list):
        right = _as_text(right)
    if isinstance(left, datetime.datetime) and isinstance(right, str):
        return left, _as_instant(right)
    if isinstance(right, datetime.datetime) and isinstance(left, str):
        return _as_instant(left), right
    return left, right


_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


def _compare(op: str, left: Any, right: Any) -> bool:
    left, right = _coerce(left, right)
    if op not in ("=", "!=") and (left is None or right is None):
        return False
    try:
        return _COMPARISONS[op](left, right)
    except TypeError:
        raise FormulaError(f"Cannot compare {left!r} and {right!r} with {op!r}")


def _find(needle: Any, haystack: Any, start: int = 0, ignore_case: bool = False) -> int:
    # an empty needle is never found
    needle, haystack = _as_text(needle), _as_text(haystack)
    if not needle:
        return 0
    if ignore_case:
        needle, haystack = needle.lower(), haystack.lower()
    return haystack.find(needle, max(int(start) - 1, 0)) + 1


def _array_join(value: Any, separator: str = ",") -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return separator.join(_as_text(v) for v in value)
    return _as_text(value)


def _is_before(left: Any, right: Any) -> bool:
    left, right = _as_instant(left), _as_instant(right)
    if left is None or right is None:
        return False
    return left < right


def _is_after(left: Any, right: Any) -> bool:
    left, right = _as_instant(left), _as_instant(right)
    if left is None or right is None:
        return False
    return left > right


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "AND": lambda record, *args: all(_truthy(a) for a in args),
    "OR": lambda record, *args: any(_truthy(a) for a in args),
    "NOT": lambda record, value: not _truthy(value),
    "IF": lambda record, cond, then, otherwise=None: then if _truthy(cond) else otherwise,
    "TRUE": lambda record: True,
    "FALSE": lambda record: False,
    "BLANK": lambda record: None,
    "RECORD_ID": lambda record: record.id,
    "FIND": lambda record, needle, haystack, start=0: _find(needle, haystack, start),
    "SEARCH": lambda record, needle, haystack, start=0: _find(
        needle, haystack, start, ignore_case=True
    ),
    "ARRAYJOIN": lambda record, value, separator=",": _array_join(value, separator),
    "LOWER": lambda record, value: _as_text(value).lower(),
    "UPPER": lambda record, value: _as_text(value).upper(),
    "TRIM": lambda record, value: _as_text(value).strip(),
    "LEN": lambda record, value: len(_as_text(value)),
    "IS_BEFORE": lambda record, left, right: _is_before(left, right),
    "IS_AFTER": lambda record, left, right: _is_after(left, right),
    "DATETIME_PARSE": lambda record, value: _as_instant(value),
}


def evaluate(node: Node, record: Record) -> Any:
    """Evaluate a parsed formula against a record."""
    match node:
        case Constant(value=value):
            return value
        case FieldRef(name=name):
            return record.fields.get(name)
        case BinaryOp(op="&", left=left, right=right):
            return _as_text(evaluate(left, record)) + _as_text(evaluate(right, record))
        case BinaryOp(op=op, left=left, right=right):
            return _compare(op, evaluate(left, record), evaluate(right, record))
        case Call(name=name, args=args):
            values = [evaluate(arg, record) for arg in args]
            try:
                return _FUNCTIONS[name](record, *values)
            except TypeError as e:
                raise FormulaError(f"Invalid arguments for {name}: {e}") from e
    raise FormulaError(f"Cannot evaluate {node!r}")


def matches(formula: str, record: Record) -> bool:
    """Whether `record` satisfies `formula`."""
    return _truthy(evaluate(parse_formula(formula), record))
