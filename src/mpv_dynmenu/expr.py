"""Sandboxed state expressions.

Expressions use a small Lua-like language, so existing input.conf files keep
working::

    #@state=mute and 'checked'
    #@state=(pause and 'checked' or '') .. (idle_active and ',disabled' or '')
    #@state=#playlist < 2 and 'disabled'

Expressions are parsed into nested tuples and evaluated by walking them; no
Python code is ever generated or executed from user input.

Identifiers are resolved in two steps: names in the fixed helper scope
(``get``, ``p``, ``tostring``, ``math`` ...) win, anything else is read as a
player property with underscores turned into dashes (``sub_visibility`` reads
``sub-visibility``).
"""
import logging
import math
import re

from .errors import ExpressionCompileError, ExpressionRuntimeError

logger = logging.getLogger(__name__)

# Expression node kinds. Nodes are tuples whose first element is the kind.
CONST = 0
NAME = 1
AND = 2
OR = 3
NOT = 4
CMP = 5
CONCAT = 6
ARITH = 7
NEG = 8
LEN = 9
INDEX = 10
CALL = 11

KEYWORDS = {'and', 'or', 'not', 'true', 'false', 'nil'}

_TOKEN_RE = re.compile(r'''
    (?P<space>\s+)
  | (?P<number>0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>\.\.|==|~=|!=|<=|>=|[<>+\-*/%\#()\[\].,])
''', re.VERBOSE)

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', '"': '"', "'": "'"}

_CMP_OPS = ('==', '~=', '!=', '<', '<=', '>', '>=')


def _unescape(text):
    return re.sub(r'\\(.)', lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


def tokenize(text):
    """Split an expression into ``(kind, value)`` tokens.

    Raises:
        ExpressionCompileError: On characters outside the language.
    """
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise ExpressionCompileError(f"unexpected symbol near '{text[pos:pos + 10]}'")
        pos = match.end()
        kind = match.lastgroup
        value = match.group(kind)
        if kind == 'space':
            continue
        if kind == 'number':
            value = int(value, 16) if value[:2].lower() == '0x' else _to_number(value)
        elif kind == 'string':
            value = _unescape(value[1:-1])
        elif kind == 'name' and value in KEYWORDS:
            kind = 'keyword'
        tokens.append((kind, value))
    return tokens


def _to_number(text):
    try:
        return int(text)
    except ValueError:
        return float(text)


class _Parser:
    """Recursive descent parser producing expression tuples."""

    def __init__(self, tokens):
        self.tokens = tokens
        self.i = 0

    def peek(self):
        if self.i < len(self.tokens):
            return self.tokens[self.i]
        return (None, None)

    def check(self, *values):
        kind, value = self.peek()
        return kind in ('op', 'keyword') and value in values

    def next(self):
        token = self.peek()
        self.i += 1
        return token

    def expect(self, value):
        if not self.check(value):
            raise ExpressionCompileError(f"'{value}' expected near {self._near()}")
        self.next()

    def _near(self):
        kind, value = self.peek()
        return '<eof>' if kind is None else f"'{value}'"

    def parse(self):
        if not self.tokens:
            raise ExpressionCompileError("empty expression")
        node = self.parse_or()
        if self.i != len(self.tokens):
            raise ExpressionCompileError(f"unexpected symbol near {self._near()}")
        return node

    def parse_or(self):
        node = self.parse_and()
        while self.check('or'):
            self.next()
            node = (OR, node, self.parse_and())
        return node

    def parse_and(self):
        node = self.parse_not()
        while self.check('and'):
            self.next()
            node = (AND, node, self.parse_not())
        return node

    def parse_not(self):
        if self.check('not'):
            self.next()
            return (NOT, self.parse_not())
        return self.parse_cmp()

    def parse_cmp(self):
        node = self.parse_concat()
        while self.check(*_CMP_OPS):
            op = self.next()[1]
            node = (CMP, op, node, self.parse_concat())
        return node

    def parse_concat(self):
        node = self.parse_add()
        if self.check('..'):
            self.next()
            # right associative, like Lua
            return (CONCAT, node, self.parse_concat())
        return node

    def parse_add(self):
        node = self.parse_mul()
        while self.check('+', '-'):
            op = self.next()[1]
            node = (ARITH, op, node, self.parse_mul())
        return node

    def parse_mul(self):
        node = self.parse_unary()
        while self.check('*', '/', '%'):
            op = self.next()[1]
            node = (ARITH, op, node, self.parse_unary())
        return node

    def parse_unary(self):
        if self.check('-'):
            self.next()
            return (NEG, self.parse_unary())
        if self.check('#'):
            self.next()
            return (LEN, self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self):
        node = self.parse_atom()
        while True:
            if self.check('.'):
                self.next()
                kind, value = self.next()
                if kind not in ('name', 'keyword'):
                    raise ExpressionCompileError("name expected after '.'")
                node = (INDEX, node, (CONST, value))
            elif self.check('['):
                self.next()
                key = self.parse_or()
                self.expect(']')
                node = (INDEX, node, key)
            elif self.check('('):
                self.next()
                args = []
                if not self.check(')'):
                    args.append(self.parse_or())
                    while self.check(','):
                        self.next()
                        args.append(self.parse_or())
                self.expect(')')
                node = (CALL, node, tuple(args))
            else:
                return node

    def parse_atom(self):
        kind, value = self.next()
        if kind in ('number', 'string'):
            return (CONST, value)
        if kind == 'keyword':
            if value == 'true':
                return (CONST, True)
            if value == 'false':
                return (CONST, False)
            if value == 'nil':
                return (CONST, None)
        if kind == 'name':
            return (NAME, value)
        if kind == 'op' and value == '(':
            node = self.parse_or()
            self.expect(')')
            return node
        self.i -= 1
        raise ExpressionCompileError(f"unexpected symbol near {self._near()}")


def parse(text):
    """Parse expression text into a tuple tree.

    Raises:
        ExpressionCompileError: On a syntax error.
    """
    return _Parser(tokenize(text)).parse()


def truthy(value):
    """Lua truthiness: only nil and false are false."""
    return value is not None and value is not False


def tostring(value):
    if value is None:
        return 'nil'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        return '%.14g' % value
    return str(value)


def tonumber(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                return None
    return None


def lua_type(value):
    if value is None:
        return 'nil'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if callable(value):
        return 'function'
    return 'table'


def contains(haystack, needle):
    """Substring test for strings, membership test for lists and tables."""
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return tostring(needle) in haystack
    if isinstance(haystack, (list, tuple, dict)):
        return needle in haystack
    raise TypeError(f"bad argument #1 to 'contains' ({lua_type(haystack)} value)")


def length(value):
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise TypeError(f"bad argument #1 to 'len' ({lua_type(value)} value)")


SCOPE = {
    'contains': contains,
    'len': length,
    'tostring': tostring,
    'tonumber': tonumber,
    'type': lua_type,
    'math': {
        'floor': math.floor,
        'ceil': math.ceil,
        'abs': abs,
        'min': min,
        'max': max,
        'huge': math.inf,
    },
    'string': {
        'lower': lambda s: str(s).lower(),
        'upper': lambda s: str(s).upper(),
        'len': lambda s: len(str(s)),
    },
}


def property_name(identifier):
    return identifier.replace('_', '-')


class PropertyNamespace:
    """Value of ``p`` inside expressions: ``p.sub_pos``, ``p['user-data/x']``."""

    def __init__(self, props, binding):
        self._props = props
        self._binding = binding

    def lookup(self, key):
        return self._props.get(property_name(str(key)), None, self._binding)


class Evaluator:
    """Walks an expression tree, reading properties for one binding."""

    def __init__(self, props, binding=None):
        self.props = props
        self.binding = binding
        self.helpers = {
            'get': self._get,
            'p': PropertyNamespace(props, binding),
        }

    def _get(self, name, default=None):
        return self.props.get(str(name), default, self.binding)

    def resolve(self, name):
        """Helper scope first, then the property of that name."""
        if name in self.helpers:
            return self.helpers[name]
        if name in SCOPE:
            return SCOPE[name]
        return self.props.get(property_name(name), None, self.binding)

    def eval(self, node):
        kind = node[0]
        if kind == CONST:
            return node[1]
        if kind == NAME:
            return self.resolve(node[1])
        if kind == AND:
            left = self.eval(node[1])
            return self.eval(node[2]) if truthy(left) else left
        if kind == OR:
            left = self.eval(node[1])
            return left if truthy(left) else self.eval(node[2])
        if kind == NOT:
            return not truthy(self.eval(node[1]))
        if kind == CMP:
            return _compare(node[1], self.eval(node[2]), self.eval(node[3]))
        if kind == CONCAT:
            return _concat(self.eval(node[1]), self.eval(node[2]))
        if kind == ARITH:
            return _arith(node[1], self.eval(node[2]), self.eval(node[3]))
        if kind == NEG:
            return -_number(self.eval(node[1]), '-')
        if kind == LEN:
            value = self.eval(node[1])
            if isinstance(value, (str, list, tuple, dict)):
                return len(value)
            raise ExpressionRuntimeError(f"attempt to get length of a {lua_type(value)} value")
        if kind == INDEX:
            return _index(self.eval(node[1]), self.eval(node[2]))
        if kind == CALL:
            func = self.eval(node[1])
            if not callable(func):
                raise ExpressionRuntimeError(f"attempt to call a {lua_type(func)} value")
            return func(*[self.eval(arg) for arg in node[2]])
        raise ExpressionRuntimeError(f"unknown expression node {kind}")


def _number(value, op):
    number = tonumber(value)
    if number is None:
        raise ExpressionRuntimeError(
            f"attempt to perform arithmetic '{op}' on a {lua_type(value)} value")
    return number


def _arith(op, left, right):
    a = _number(left, op)
    b = _number(right, op)
    if op == '+':
        return a + b
    if op == '-':
        return a - b
    if op == '*':
        return a * b
    if op == '/':
        return a / b if b else math.copysign(math.inf, a) if a else math.nan
    if b == 0:
        return math.nan
    return a % b


def _lua_equal(a, b):
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    return a == b


def _compare(op, a, b):
    if op == '==':
        return _lua_equal(a, b)
    if op in ('~=', '!='):
        return not _lua_equal(a, b)
    numbers = all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (a, b))
    strings = isinstance(a, str) and isinstance(b, str)
    if not (numbers or strings):
        raise ExpressionRuntimeError(
            f"attempt to compare {lua_type(a)} with {lua_type(b)}")
    if op == '<':
        return a < b
    if op == '<=':
        return a <= b
    if op == '>':
        return a > b
    return a >= b


def _concat(a, b):
    for value in (a, b):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ExpressionRuntimeError(f"attempt to concatenate a {lua_type(value)} value")
    return tostring(a) + tostring(b)


def _index(obj, key):
    if isinstance(obj, PropertyNamespace):
        return obj.lookup(key)
    if isinstance(obj, dict):
        return obj.get(key)
    if isinstance(obj, (list, tuple)):
        if isinstance(key, bool) or not isinstance(key, (int, float)) or key != int(key):
            return None
        pos = int(key)
        return obj[pos - 1] if 1 <= pos <= len(obj) else None
    raise ExpressionRuntimeError(f"attempt to index a {lua_type(obj)} value")


class CompiledExpr:
    """A parsed expression ready to be evaluated for a binding."""

    def __init__(self, name, source, tree):
        self.name = name
        self.source = source
        self.tree = tree

    def evaluate(self, props, binding=None):
        """Evaluate against the property cache.

        Raises:
            ExpressionRuntimeError: The expression failed at runtime.
        """
        try:
            return Evaluator(props, binding).eval(self.tree)
        except ExpressionRuntimeError:
            raise
        except (TypeError, ValueError, ArithmeticError, RecursionError) as e:
            raise ExpressionRuntimeError(str(e)) from e

    def __repr__(self):
        return f"CompiledExpr({self.name!r}, {self.source!r})"


def compile_expr(name, text):
    """Compile ``text``; a syntax error gives an expression that is always false."""
    try:
        tree = parse(text)
    except (ExpressionCompileError, RecursionError) as e:
        logger.error(f"expr '{name}' : {e}")
        tree = (CONST, False)
    return CompiledExpr(name, text, tree)


def state_flags(result):
    """Turn an expression result into a list of state flags.

    ``true`` means checked; strings are split on commas and spaces
    (``'checked,disabled'``); lists contribute their string members;
    ``false``/``nil`` clear the state.
    """
    if result is None or result is False:
        return []
    if result is True:
        return ['checked']
    if isinstance(result, str):
        return [s for s in re.split(r'[,\s]+', result) if s]
    if isinstance(result, (list, tuple)):
        return [s for s in result if isinstance(s, str) and s]
    if isinstance(result, (int, float)):
        return ['checked'] if result else []
    return []
