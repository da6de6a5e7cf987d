"""Expression evaluation: $param substitution, if(), named functions, memoization.

Expressions are plain strings. Evaluation runs a fixed reduction pipeline
over the text and finishes with a small recursive-descent evaluator that
only understands literals, identifiers, arithmetic, comparison, logic,
ternaries, array literals and indexing. Nothing is handed to ``eval``.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping
from typing import Any

from shapeweave.context import Context
from shapeweave.diagnostics import DiagnosticLog
from shapeweave.errors import ExpressionError

_VAR_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_IF_RE = re.compile(r"\bif\s*\(")
_SAFE_CHARS_RE = re.compile(r"""^[\d+\-*/%.()<>!=&|,\s'"?:#\w\[\]]*$""")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

DEFAULT_IF_PASSES = 10

# Tokenizer for the reduced expression text
_EXPR_TOKEN_RE = re.compile(
    r"""
    (\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)   # NUMBER
    |("[^"]*"|'[^']*')                                     # STRING
    |([A-Za-z_][A-Za-z0-9_]*)                              # IDENT
    |(===|!==|==|!=|<=|>=|&&|\|\||\*\*)                    # OP2
    |([-+*/%<>!?:,()\[\]])                                 # OP1
    |(\#[0-9A-Fa-f]+)                                      # HEX
    |(\s+)                                                 # WHITESPACE (skip)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None, "True": True, "False": False}


class _Token:
    __slots__ = ("kind", "value")

    def __init__(self, kind: str, value: object = None):
        self.kind = kind
        self.value = value

    def __repr__(self) -> str:
        return f"_Token({self.kind!r}, {self.value!r})"


def _tokenize_expr(expr: str) -> list[_Token]:
    """Tokenize a reduced expression string into tokens."""
    tokens: list[_Token] = []
    pos = 0
    while pos < len(expr):
        m = _EXPR_TOKEN_RE.match(expr, pos)
        if m is None:
            raise ExpressionError(f"unexpected character in expression at position {pos}: {expr!r}")
        pos = m.end()
        if m.group(1) is not None:
            text = m.group(1)
            if "." in text or "e" in text or "E" in text:
                tokens.append(_Token("NUMBER", float(text)))
            else:
                tokens.append(_Token("NUMBER", int(text)))
        elif m.group(2) is not None:
            tokens.append(_Token("STRING", m.group(2)[1:-1]))
        elif m.group(3) is not None:
            tokens.append(_Token("IDENT", m.group(3)))
        elif m.group(4) is not None:
            tokens.append(_Token("OP", m.group(4)))
        elif m.group(5) is not None:
            tokens.append(_Token("OP", m.group(5)))
        elif m.group(6) is not None:
            tokens.append(_Token("STRING", m.group(6)))
        # group(7) is whitespace, skip
    tokens.append(_Token("EOF"))
    return tokens


class _ExprParser:
    """Recursive descent evaluator for the reduced expression language."""

    def __init__(self, tokens: list[_Token], symbols: Mapping[str, Any]):
        self.tokens = tokens
        self.pos = 0
        self.symbols = symbols

    def _peek(self) -> _Token:
        return self.tokens[self.pos]

    def _advance(self) -> _Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _at(self, *ops: str) -> bool:
        tok = self._peek()
        if tok.kind == "OP" and tok.value in ops:
            return True
        return tok.kind == "IDENT" and tok.value in ops

    def _expect(self, op: str) -> None:
        tok = self._advance()
        if tok.kind != "OP" or tok.value != op:
            raise ExpressionError(f"expected {op!r}, got {tok.value!r} in expression")

    def parse(self) -> Any:
        if self._peek().kind == "EOF":
            raise ExpressionError("empty expression")
        result = self._ternary()
        if self._peek().kind != "EOF":
            raise ExpressionError(f"unexpected token after expression: {self._peek().value!r}")
        return result

    def _ternary(self) -> Any:
        cond = self._or()
        if self._at("?"):
            self._advance()
            when_true = self._ternary()
            self._expect(":")
            when_false = self._ternary()
            return when_true if _truthy(cond) else when_false
        return cond

    def _or(self) -> Any:
        left = self._and()
        while self._at("||", "or"):
            self._advance()
            right = self._and()
            left = left if _truthy(left) else right
        return left

    def _and(self) -> Any:
        left = self._equality()
        while self._at("&&", "and"):
            self._advance()
            right = self._equality()
            left = right if _truthy(left) else left
        return left

    def _equality(self) -> Any:
        left = self._comparison()
        while self._at("==", "!=", "===", "!=="):
            op = self._advance().value
            right = self._comparison()
            equal = _loose_equal(left, right)
            left = equal if op in ("==", "===") else not equal
        return left

    def _comparison(self) -> Any:
        left = self._additive()
        while self._at("<", "<=", ">", ">="):
            op = self._advance().value
            right = self._additive()
            if op == "<":
                left = left < right
            elif op == "<=":
                left = left <= right
            elif op == ">":
                left = left > right
            else:
                left = left >= right
        return left

    def _additive(self) -> Any:
        left = self._multiplicative()
        while self._at("+", "-"):
            op = self._advance().value
            right = self._multiplicative()
            if op == "+":
                if isinstance(left, str) or isinstance(right, str):
                    left = _to_text(left) + _to_text(right)
                else:
                    left = left + right
            else:
                left = left - right
        return left

    def _multiplicative(self) -> Any:
        left = self._unary()
        while self._at("*", "/", "%"):
            op = self._advance().value
            right = self._unary()
            if op == "*":
                left = left * right
            elif op == "/":
                if right == 0:
                    raise ExpressionError("division by zero in expression")
                left = left / right
            else:
                if right == 0:
                    raise ExpressionError("modulo by zero in expression")
                rem = math.fmod(left, right)
                left = int(rem) if isinstance(left, int) and isinstance(right, int) else rem
        return left

    def _unary(self) -> Any:
        if self._at("-"):
            self._advance()
            return -self._unary()
        if self._at("+"):
            self._advance()
            return self._unary()
        if self._at("!", "not"):
            self._advance()
            return not _truthy(self._unary())
        return self._power()

    def _power(self) -> Any:
        base = self._postfix()
        if self._at("**"):
            self._advance()
            return base ** self._unary()
        return base

    def _postfix(self) -> Any:
        value = self._atom()
        while self._at("["):
            self._advance()
            index = self._ternary()
            self._expect("]")
            if isinstance(index, float) and index.is_integer():
                index = int(index)
            value = value[index]
        return value

    def _atom(self) -> Any:
        tok = self._peek()
        if tok.kind in ("NUMBER", "STRING"):
            self._advance()
            return tok.value
        if tok.kind == "IDENT":
            self._advance()
            name = tok.value
            if name in self.symbols:
                return self.symbols[name]
            if name in _KEYWORDS:
                return _KEYWORDS[name]
            if self._at("("):
                raise ExpressionError(f"unknown function in expression: {name!r}")
            raise ExpressionError(f"unknown identifier in expression: {name!r}")
        if self._at("("):
            self._advance()
            result = self._ternary()
            self._expect(")")
            return result
        if self._at("["):
            self._advance()
            items: list[Any] = []
            if not self._at("]"):
                items.append(self._ternary())
                while self._at(","):
                    self._advance()
                    items.append(self._ternary())
            self._expect("]")
            return items
        raise ExpressionError(f"unexpected token in expression: {tok.value!r}")


def _truthy(value: Any) -> bool:
    return bool(value)


def _loose_equal(left: Any, right: Any) -> bool:
    if isinstance(left, (int, float)) and isinstance(right, str) and _NUMBER_RE.match(right):
        return left == float(right)
    if isinstance(right, (int, float)) and isinstance(left, str) and _NUMBER_RE.match(left):
        return right == float(left)
    return left == right


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Text scanning helpers
# ---------------------------------------------------------------------------


def _string_spans(expr: str) -> list[tuple[int, int]]:
    """Return (start, end) spans of quoted string literals in ``expr``."""
    spans: list[tuple[int, int]] = []
    i = 0
    while i < len(expr):
        c = expr[i]
        if c in ("'", '"'):
            close = expr.find(c, i + 1)
            if close == -1:
                spans.append((i, len(expr)))
                break
            spans.append((i, close + 1))
            i = close + 1
        else:
            i += 1
    return spans


def _in_spans(pos: int, spans: list[tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in spans)


def find_matching_paren(expr: str, open_pos: int) -> int:
    """Index of the ``)`` closing the ``(`` at ``open_pos``, or -1."""
    depth = 0
    quote = ""
    for i in range(open_pos, len(expr)):
        c = expr[i]
        if quote:
            if c == quote:
                quote = ""
            continue
        if c in ("'", '"'):
            quote = c
        elif c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_args(arg_str: str) -> list[str]:
    """Split a call's argument text on top-level commas."""
    args: list[str] = []
    buff: list[str] = []
    depth = 0
    quote = ""
    for c in arg_str:
        if quote:
            buff.append(c)
            if c == quote:
                quote = ""
            continue
        if c in ("'", '"'):
            quote = c
        elif c in "([":
            depth += 1
        elif c in ")]":
            depth -= 1
        elif c == "," and depth == 0:
            args.append("".join(buff).strip())
            buff = []
            continue
        buff.append(c)
    tail = "".join(buff).strip()
    if tail:
        args.append(tail)
    return args


def _is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"')


def _context_key(symbols: Mapping[str, Any]) -> str:
    return json.dumps(symbols, sort_keys=True, default=repr)


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """Evaluates expression strings against a Context with a flat memo cache.

    The cache key is the pair (expression text, JSON-serialized context).
    There is no fine-grained invalidation: call :meth:`clear_cache` whenever
    a value expressions may depend on changes.
    """

    def __init__(
        self,
        functions: Mapping[str, Callable[..., Any]] | None = None,
        constants: Mapping[str, float] | None = None,
        diagnostics: DiagnosticLog | None = None,
        max_if_passes: int = DEFAULT_IF_PASSES,
    ):
        from shapeweave.builtins import CONSTANTS, FUNCTIONS

        self.functions: dict[str, Callable[..., Any]] = dict(FUNCTIONS)
        if functions:
            self.functions.update(functions)
        self.constants: dict[str, float] = dict(CONSTANTS)
        if constants:
            self.constants.update(constants)
        self.diagnostics = diagnostics or DiagnosticLog()
        self.max_if_passes = max_if_passes
        self.cache: dict[tuple[str, str], Any] = {}

    def register(self, name: str, fn: Callable[..., Any]) -> None:
        """Expose ``fn`` to expressions as ``name(...)``."""
        if name == "if":
            raise ValueError("'if' is reserved")
        self.functions[name] = fn

    def clear_cache(self) -> None:
        self.cache.clear()

    def evaluate(
        self,
        expression: Any,
        context: Context | Mapping[str, Any] | None = None,
        *,
        path: str | None = None,
    ) -> Any:
        """Evaluate ``expression`` against ``context``.

        Non-strings pass through unchanged. Any failure is recorded in the
        diagnostic log and the expression evaluates to ``0``.
        """
        if not isinstance(expression, str):
            return expression

        symbols = _flatten(context)
        key = (expression, _context_key(symbols))
        if key in self.cache:
            return self.cache[key]

        try:
            result = self._evaluate_with_context(expression, symbols, {}, path)
        except Exception as e:
            self.diagnostics.record("X01", f"{expression!r} failed: {e}", path=path)
            result = 0

        self.cache[key] = result
        return result

    def render(
        self,
        text: Any,
        context: Context | Mapping[str, Any] | None = None,
        *,
        path: str | None = None,
    ) -> Any:
        """Resolve a label-like string (id, material, reference target).

        Strings with calls or conditionals are evaluated; strings with only
        ``$name`` tokens are interpolated as text; anything else is literal.
        """
        if not isinstance(text, str):
            return text
        stripped = text.strip()
        if "(" in stripped or "?" in stripped or (stripped.startswith("=") and not stripped.startswith("==")):
            return self.evaluate(text, context, path=path)
        if "$" not in stripped:
            return text
        symbols = _flatten(context)

        def _replace(m: re.Match) -> str:
            name = m.group(1)
            if name not in symbols:
                self.diagnostics.record("X02", f"missing variable ${name} in {text!r}", path=path)
                return m.group(0)
            return _to_text(symbols[name])

        return _VAR_RE.sub(_replace, text)

    # -- pipeline ----------------------------------------------------------

    def _evaluate_with_context(
        self,
        expression: str,
        symbols: dict[str, Any],
        slots: dict[str, Any],
        path: str | None,
    ) -> Any:
        expr = expression.strip()
        if expr.startswith("=") and not expr.startswith("=="):
            expr = expr[1:]

        expr = self._substitute_variables(expr, symbols, slots, path)
        expr = self._convert_if_to_ternary(expr)
        expr = self._inline_functions(expr, symbols, slots, path)
        expr = self._inline_constants(expr)
        expr = self._inline_bare_variables(expr, symbols)

        if len(slots) and expr.strip() in slots:
            return slots[expr.strip()]
        return self._safe_eval(expr, {**symbols, **slots})

    def _substitute_variables(
        self,
        expr: str,
        symbols: Mapping[str, Any],
        slots: dict[str, Any],
        path: str | None,
    ) -> str:
        """Stage 1: replace ``$name`` tokens outside string literals."""
        spans = _string_spans(expr)

        def _replace(m: re.Match) -> str:
            if _in_spans(m.start(), spans):
                return m.group(0)
            name = m.group(1)
            if name not in symbols:
                self.diagnostics.record(
                    "X02", f"missing variable ${name} in {expr!r}; using 0", path=path
                )
                return "0"
            value = symbols[name]
            if isinstance(value, Mapping) and "value" in value:
                value = value["value"]
            return self._as_literal(value, slots)

        return _VAR_RE.sub(_replace, expr)

    def _convert_if_to_ternary(self, expr: str) -> str:
        """Stage 2: rewrite ``if(c, a, b)`` as ``((c)?(a):(b))``, bounded passes."""
        for _ in range(self.max_if_passes):
            changed = False
            pos = 0
            while True:
                spans = _string_spans(expr)
                m = _IF_RE.search(expr, pos)
                if m is None:
                    break
                start = m.start()
                if _in_spans(start, spans) or (start > 0 and expr[start - 1] in "._$"):
                    pos = m.end()
                    continue
                open_pos = m.end() - 1
                close = find_matching_paren(expr, open_pos)
                if close == -1:
                    break
                args = split_args(expr[open_pos + 1 : close])
                if len(args) != 3:
                    pos = m.end()
                    continue
                replacement = f"(({args[0]})?({args[1]}):({args[2]}))"
                expr = expr[:start] + replacement + expr[close + 1 :]
                pos = start + len(replacement)
                changed = True
            if not changed:
                break
        return expr

    def _inline_functions(
        self,
        expr: str,
        symbols: dict[str, Any],
        slots: dict[str, Any],
        path: str | None,
    ) -> str:
        """Stage 3: call registered functions and splice results back in."""
        for name, fn in self.functions.items():
            pattern = re.compile(rf"\b{re.escape(name)}\s*\(")
            pos = 0
            while True:
                m = pattern.search(expr, pos)
                if m is None:
                    break
                start = m.start()
                spans = _string_spans(expr)
                if _in_spans(start, spans) or (start > 0 and expr[start - 1] in "._$"):
                    pos = m.end()
                    continue
                open_pos = m.end() - 1
                close = find_matching_paren(expr, open_pos)
                if close == -1:
                    break
                args = [
                    raw[1:-1]
                    if _is_quoted(raw)
                    else self._evaluate_with_context(raw, symbols, slots, path)
                    for raw in split_args(expr[open_pos + 1 : close])
                ]
                try:
                    out = fn(*args)
                except Exception as e:
                    self.diagnostics.record("X01", f"{name}(): {e}", path=path)
                    out = 0
                literal = self._as_literal(out, slots)
                expr = expr[:start] + literal + expr[close + 1 :]
                pos = start + len(literal)
        return expr

    def _inline_constants(self, expr: str) -> str:
        """Stage 4a: replace named numeric constants (pi, e, ...)."""
        for name, value in self.constants.items():
            expr = self._replace_identifier(expr, name, repr(value))
        return expr

    def _inline_bare_variables(self, expr: str, symbols: Mapping[str, Any]) -> str:
        """Stage 4b: inline numeric context variables referenced without ``$``."""
        for name in sorted(symbols, key=len, reverse=True):
            value = symbols[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if not re.search(rf"\b{re.escape(name)}\b", expr):
                continue
            literal = repr(value) if value >= 0 else f"({value!r})"
            expr = self._replace_identifier(expr, name, literal)
        return expr

    @staticmethod
    def _replace_identifier(expr: str, name: str, literal: str) -> str:
        spans = _string_spans(expr)
        pattern = re.compile(rf"(?<![\w.$])\b{re.escape(name)}\b(?!\s*\()")

        def _replace(m: re.Match) -> str:
            return m.group(0) if _in_spans(m.start(), spans) else literal

        return pattern.sub(_replace, expr)

    @staticmethod
    def _as_literal(value: Any, slots: dict[str, Any]) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)) and math.isfinite(value):
            return repr(value) if value >= 0 else f"({value!r})"
        name = f"__slot{len(slots)}"
        slots[name] = value
        return name

    @staticmethod
    def _safe_eval(expr: str, symbols: Mapping[str, Any]) -> Any:
        """Stage 5: allow-list check, then recursive-descent evaluation."""
        if not _SAFE_CHARS_RE.match(expr):
            raise ExpressionError(f"unsafe characters in expression: {expr!r}")
        return _ExprParser(_tokenize_expr(expr), symbols).parse()


def _flatten(context: Context | Mapping[str, Any] | None) -> dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, Context):
        return context.flatten()
    return dict(context)


def looks_like_expression(value: Any) -> bool:
    """True for strings the walker should evaluate rather than pass through."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    return text.startswith("=") or "$" in text or "(" in text


def is_number_text(text: str) -> bool:
    return bool(_NUMBER_RE.match(text.strip()))
