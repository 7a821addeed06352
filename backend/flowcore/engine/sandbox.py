"""Sandboxed Interpreter for Node Logic Bodies

Logic bodies are short Python-flavoured scripts that may reference upstream
results through the reserved identifier ``$node``::

    total = $node["Fetch"].data.x * 2
    return total

Since ``$`` is not valid Python, the reserved identifier is rewritten to an
internal name (outside string literals and comments) before the text is
handed to ``ast.parse``. The resulting tree is evaluated by a restricted
tree-walking interpreter built on an explicit allowlist:

- Literals, names, f-strings, list/tuple/set/dict displays
- Arithmetic, comparisons, boolean and unary operators, ``x if c else y``
- Subscripts, slices, attribute access (dict keys, ``length``, allow-listed
  str/list/dict methods)
- Calls to allow-listed functions, lambdas, comprehensions
- Assignment, augmented assignment, if/for/while, break/continue/pass,
  return, raise, assert

Imports, function/class definitions, dunder attributes, ``await``, ``with``
and ``try`` are rejected. This narrows what a logic body can reach; it is not
a security boundary.
"""

from __future__ import annotations

import ast
import json
import operator
import time
from typing import Any, Callable, Dict, List, Optional

# Authoring contract for upstream references
RESERVED_IDENTIFIER = "$node"

# Legal Python name the reserved identifier is rewritten to before parsing
INTERNAL_IDENTIFIER = "__node__"

# Ambient capabilities rebound to an inert value inside the sandbox
DENIED_NAMES = frozenset({
    "fetch",
    "XMLHttpRequest",
    "WebSocket",
    "postMessage",
    "localStorage",
    "sessionStorage",
    "indexedDB",
    "importScripts",
    "open",
    "eval",
    "exec",
    "compile",
    "__import__",
    "globals",
    "locals",
    "vars",
    "getattr",
    "setattr",
    "delattr",
    "input",
    "breakpoint",
})

# Size guards for operations that can allocate without looping
MAX_SEQUENCE_LENGTH = 1_000_000
MAX_EXPONENT = 10_000

_IDENT_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_")


class SandboxError(Exception):
    """Raised when a logic body fails to parse or evaluate."""
    pass


class _ReturnSignal(Exception):
    def __init__(self, value: Any):
        self.value = value


class _BreakSignal(Exception):
    pass


class _ContinueSignal(Exception):
    pass


class ScriptFailure(Exception):
    """Error value a logic body can raise with ``raise Error("message")``."""
    pass


class NodeContext(dict):
    """Mapping bound to ``$node``. Missing labels read as ``None``."""

    def __missing__(self, key):
        return None


# =====================================================================
# Reserved identifier rewriting + parsing
# =====================================================================


def rewrite_reserved_identifier(source: str) -> str:
    """Replace ``$node`` with :data:`INTERNAL_IDENTIFIER` in code positions.

    String literals and comments are copied verbatim, except for the
    replacement fields of f-strings, which are code.
    """
    out: List[str] = []
    i = 0
    n = len(source)
    marker = RESERVED_IDENTIFIER

    while i < n:
        ch = source[i]

        if ch == "#":
            end = source.find("\n", i)
            end = n if end == -1 else end
            out.append(source[i:end])
            i = end
            continue

        if ch in ("'", '"'):
            is_fstring = _has_fstring_prefix(source, i)
            i = _copy_string(source, i, out, is_fstring)
            continue

        if source.startswith(marker, i):
            after = i + len(marker)
            if after >= n or source[after] not in _IDENT_CHARS:
                out.append(INTERNAL_IDENTIFIER)
                i = after
                continue

        out.append(ch)
        i += 1

    return "".join(out)


def _has_fstring_prefix(source: str, quote_pos: int) -> bool:
    j = quote_pos - 1
    prefix = ""
    while j >= 0 and source[j] in "rRbBuUfF":
        prefix = source[j] + prefix
        j -= 1
    if j >= 0 and source[j] in _IDENT_CHARS:
        # Part of a longer identifier, not a string prefix
        return False
    return "f" in prefix.lower()


def _copy_string(source: str, start: int, out: List[str], is_fstring: bool) -> int:
    """Copy one string literal starting at ``start``; return the index after it."""
    n = len(source)
    quote = source[start]
    delim = quote * 3 if source.startswith(quote * 3, start) else quote
    i = start + len(delim)
    out.append(delim)
    depth = 0

    while i < n:
        if source.startswith(delim, i) and depth == 0:
            out.append(delim)
            return i + len(delim)

        ch = source[i]
        if ch == "\\" and i + 1 < n:
            out.append(source[i:i + 2])
            i += 2
            continue

        if is_fstring:
            if ch == "{":
                if depth == 0 and source.startswith("{{", i):
                    out.append("{{")
                    i += 2
                    continue
                depth += 1
            elif ch == "}" and depth > 0:
                depth -= 1
            elif depth > 0 and source.startswith(RESERVED_IDENTIFIER, i):
                after = i + len(RESERVED_IDENTIFIER)
                if after >= n or source[after] not in _IDENT_CHARS:
                    out.append(INTERNAL_IDENTIFIER)
                    i = after
                    continue

        if ch == "\n" and len(delim) == 1:
            # Unterminated single-line string; let the parser report it
            return i

        out.append(ch)
        i += 1

    return i


def parse_logic(source: str) -> ast.Module:
    """Rewrite the reserved identifier and parse a logic body.

    Raises:
        SyntaxError: If the body is not valid script syntax
    """
    return ast.parse(rewrite_reserved_identifier(source), mode="exec")


# =====================================================================
# Utility surface
# =====================================================================


def pretty(value: Any, indent: int = 2) -> str:
    """Pretty-print a value as indented JSON text."""
    return json.dumps(value, indent=indent, ensure_ascii=False, default=str)


def _make_error(message: Any = "Script error") -> ScriptFailure:
    return ScriptFailure(str(message))


def _reversed(value: Any) -> list:
    return list(reversed(value))


def _range(*args: int) -> range:
    r = range(*args)
    if len(r) > MAX_SEQUENCE_LENGTH:
        raise SandboxError(f"range too large ({len(r)} items)")
    return r


def _map(func: Callable, *iterables: Any) -> list:
    return list(map(func, *iterables))


def _filter(func: Optional[Callable], iterable: Any) -> list:
    return list(filter(func, iterable))


ALLOWED_FUNCTIONS: Dict[str, Callable] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list": list,
    "dict": dict,
    "set": set,
    "tuple": tuple,
    "round": round,
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "sorted": sorted,
    "reversed": _reversed,
    "range": _range,
    "enumerate": enumerate,
    "zip": zip,
    "any": any,
    "all": all,
    "map": _map,
    "filter": _filter,
    "isinstance": isinstance,
    "Error": _make_error,
}

_ALLOWED_CALLABLE_IDS = frozenset(id(f) for f in ALLOWED_FUNCTIONS.values())

# JS-style aliases accepted for convenience
_LITERAL_ALIASES = {"true": True, "false": False, "null": None, "undefined": None}

_STR_METHODS = frozenset({
    "upper", "lower", "strip", "lstrip", "rstrip", "split", "rsplit", "join",
    "replace", "startswith", "endswith", "find", "rfind", "title", "capitalize",
    "count", "isdigit", "isalpha", "isalnum", "splitlines", "zfill", "partition",
})
_LIST_METHODS = frozenset({
    "append", "extend", "insert", "pop", "remove", "index", "count", "sort",
    "reverse", "copy", "clear",
})
_DICT_METHODS = frozenset({
    "get", "keys", "values", "items", "update", "pop", "setdefault", "copy", "clear",
})

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.BitAnd: operator.and_,
    ast.BitOr: operator.or_,
    ast.BitXor: operator.xor,
    ast.LShift: operator.lshift,
    ast.RShift: operator.rshift,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_UNARY_OPS = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Invert: operator.invert,
}


# =====================================================================
# Interpreter
# =====================================================================


class _Scope:
    """Variable scope with lexical parent lookup."""

    def __init__(self, variables: Optional[Dict[str, Any]] = None, parent: Optional["_Scope"] = None):
        self.vars: Dict[str, Any] = variables if variables is not None else {}
        self.parent = parent

    def lookup(self, name: str) -> Any:
        scope: Optional[_Scope] = self
        while scope is not None:
            if name in scope.vars:
                return scope.vars[name]
            scope = scope.parent
        if name in _LITERAL_ALIASES:
            return _LITERAL_ALIASES[name]
        raise SandboxError(f"Unknown variable: '{name}'")


class _Lambda:
    """Closure created by a ``lambda`` expression inside a logic body."""

    def __init__(self, node: ast.Lambda, scope: _Scope, interpreter: "SandboxInterpreter"):
        self._node = node
        self._scope = scope
        self._interpreter = interpreter

    def __call__(self, *args: Any) -> Any:
        params = [a.arg for a in self._node.args.args]
        defaults = self._node.args.defaults
        if len(args) > len(params):
            raise SandboxError(f"lambda takes {len(params)} arguments, got {len(args)}")

        bound: Dict[str, Any] = dict(zip(params, args))
        missing = params[len(args):]
        first_default = len(params) - len(defaults)
        for name in missing:
            index = params.index(name)
            if index < first_default:
                raise SandboxError(f"lambda missing argument: '{name}'")
            bound[name] = self._interpreter.eval_expr(defaults[index - first_default], self._scope)

        return self._interpreter.eval_expr(self._node.body, _Scope(bound, self._scope))


class SandboxInterpreter:
    """Evaluates a parsed logic body against an allow-listed scope.

    One instance per evaluation; it carries the iteration budget and the
    wall-clock deadline.
    """

    def __init__(
        self,
        max_iterations: int = 100_000,
        timeout: Optional[float] = None,
        utilities: Optional[Dict[str, Callable]] = None,
    ):
        self._max_iterations = max_iterations
        self._utility_ids = frozenset(id(f) for f in (utilities or {}).values())
        self._iterations = 0
        self._deadline = time.monotonic() + timeout if timeout else None

    # --- entry point ---

    def run(self, tree: ast.Module, scope: _Scope) -> Any:
        """Execute the module body; return the body's result value."""
        body = tree.body
        implicit = (
            bool(body)
            and isinstance(body[-1], ast.Expr)
            and not any(isinstance(n, ast.Return) for n in ast.walk(tree))
        )

        try:
            if implicit:
                self.exec_block(body[:-1], scope)
                return self.eval_expr(body[-1].value, scope)
            self.exec_block(body, scope)
        except _ReturnSignal as signal:
            return signal.value
        except (_BreakSignal, _ContinueSignal):
            raise SandboxError("'break' or 'continue' outside loop")
        return None

    # --- budget ---

    def _tick(self) -> None:
        self._iterations += 1
        if self._iterations > self._max_iterations:
            raise SandboxError(f"Iteration limit exceeded ({self._max_iterations})")
        self._check_deadline()

    def _check_deadline(self) -> None:
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise SandboxError("Script timed out")

    # --- statements ---

    def exec_block(self, statements: List[ast.stmt], scope: _Scope) -> None:
        for stmt in statements:
            self.exec_stmt(stmt, scope)

    def exec_stmt(self, node: ast.stmt, scope: _Scope) -> None:
        self._check_deadline()

        if isinstance(node, ast.Expr):
            self.eval_expr(node.value, scope)
            return

        if isinstance(node, ast.Return):
            value = self.eval_expr(node.value, scope) if node.value is not None else None
            raise _ReturnSignal(value)

        if isinstance(node, ast.Assign):
            value = self.eval_expr(node.value, scope)
            for target in node.targets:
                self._assign(target, value, scope)
            return

        if isinstance(node, ast.AnnAssign):
            if node.value is not None:
                self._assign(node.target, self.eval_expr(node.value, scope), scope)
            return

        if isinstance(node, ast.AugAssign):
            op_func = _BIN_OPS.get(type(node.op))
            if op_func is None:
                raise SandboxError(f"Unsupported operator: {type(node.op).__name__}")
            current = self.eval_expr(node.target, scope)
            value = self._binop(op_func, current, self.eval_expr(node.value, scope))
            self._assign(node.target, value, scope)
            return

        if isinstance(node, ast.If):
            if self.eval_expr(node.test, scope):
                self.exec_block(node.body, scope)
            else:
                self.exec_block(node.orelse, scope)
            return

        if isinstance(node, ast.For):
            iterable = self.eval_expr(node.iter, scope)
            broke = False
            for item in iterable:
                self._tick()
                self._assign(node.target, item, scope)
                try:
                    self.exec_block(node.body, scope)
                except _BreakSignal:
                    broke = True
                    break
                except _ContinueSignal:
                    continue
            if not broke:
                self.exec_block(node.orelse, scope)
            return

        if isinstance(node, ast.While):
            broke = False
            while self.eval_expr(node.test, scope):
                self._tick()
                try:
                    self.exec_block(node.body, scope)
                except _BreakSignal:
                    broke = True
                    break
                except _ContinueSignal:
                    continue
            if not broke:
                self.exec_block(node.orelse, scope)
            return

        if isinstance(node, ast.Break):
            raise _BreakSignal()

        if isinstance(node, ast.Continue):
            raise _ContinueSignal()

        if isinstance(node, ast.Pass):
            return

        if isinstance(node, ast.Raise):
            if node.exc is None:
                raise SandboxError("Bare 'raise' is not supported")
            exc = self.eval_expr(node.exc, scope)
            if isinstance(exc, ScriptFailure):
                raise exc
            raise ScriptFailure(str(exc))

        if isinstance(node, ast.Assert):
            if not self.eval_expr(node.test, scope):
                message = self.eval_expr(node.msg, scope) if node.msg is not None else "Assertion failed"
                raise ScriptFailure(str(message))
            return

        if isinstance(node, ast.Delete):
            for target in node.targets:
                self._delete(target, scope)
            return

        raise SandboxError(f"Unsupported statement: {type(node).__name__}")

    def _assign(self, target: ast.expr, value: Any, scope: _Scope) -> None:
        if isinstance(target, ast.Name):
            self._check_name(target.id)
            scope.vars[target.id] = value
            return

        if isinstance(target, (ast.Tuple, ast.List)):
            items = list(value)
            if len(items) != len(target.elts):
                raise SandboxError(
                    f"Cannot unpack {len(items)} values into {len(target.elts)} targets"
                )
            for elt, item in zip(target.elts, items):
                self._assign(elt, item, scope)
            return

        if isinstance(target, ast.Subscript):
            container = self.eval_expr(target.value, scope)
            container[self._eval_slice(target.slice, scope)] = value
            return

        if isinstance(target, ast.Attribute):
            container = self.eval_expr(target.value, scope)
            self._check_attr(target.attr)
            if not isinstance(container, dict):
                raise SandboxError("Attribute assignment only supported on dict-like objects")
            container[target.attr] = value
            return

        raise SandboxError(f"Unsupported assignment target: {type(target).__name__}")

    def _delete(self, target: ast.expr, scope: _Scope) -> None:
        if isinstance(target, ast.Name):
            scope.vars.pop(target.id, None)
        elif isinstance(target, ast.Subscript):
            container = self.eval_expr(target.value, scope)
            del container[self._eval_slice(target.slice, scope)]
        else:
            raise SandboxError(f"Unsupported delete target: {type(target).__name__}")

    # --- expressions ---

    def eval_expr(self, node: ast.expr, scope: _Scope) -> Any:
        # Literal values: 42, "hello", True, None
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            self._check_name(node.id)
            return scope.lookup(node.id)

        if isinstance(node, ast.BinOp):
            op_func = _BIN_OPS.get(type(node.op))
            if op_func is None:
                raise SandboxError(f"Unsupported binary op: {type(node.op).__name__}")
            left = self.eval_expr(node.left, scope)
            right = self.eval_expr(node.right, scope)
            return self._binop(op_func, left, right)

        # Boolean operators keep Python's short-circuit value semantics
        if isinstance(node, ast.BoolOp):
            value: Any = None
            if isinstance(node.op, ast.And):
                for operand in node.values:
                    value = self.eval_expr(operand, scope)
                    if not value:
                        return value
                return value
            for operand in node.values:
                value = self.eval_expr(operand, scope)
                if value:
                    return value
            return value

        if isinstance(node, ast.UnaryOp):
            op_func = _UNARY_OPS.get(type(node.op))
            if op_func is None:
                raise SandboxError(f"Unsupported unary op: {type(node.op).__name__}")
            return op_func(self.eval_expr(node.operand, scope))

        if isinstance(node, ast.Compare):
            left = self.eval_expr(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                op_func = _COMPARE_OPS.get(type(op))
                if op_func is None:
                    raise SandboxError(f"Unsupported comparison: {type(op).__name__}")
                right = self.eval_expr(comparator, scope)
                if not op_func(left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self.eval_expr(node.test, scope):
                return self.eval_expr(node.body, scope)
            return self.eval_expr(node.orelse, scope)

        if isinstance(node, ast.Subscript):
            value = self.eval_expr(node.value, scope)
            key = self._eval_slice(node.slice, scope)
            if value is None:
                raise SandboxError(f"Cannot read {key!r} of None")
            return value[key]

        if isinstance(node, ast.Attribute):
            return self._get_attribute(self.eval_expr(node.value, scope), node.attr)

        if isinstance(node, ast.Call):
            return self._call(node, scope)

        if isinstance(node, ast.List):
            return [self.eval_expr(elt, scope) for elt in node.elts]

        if isinstance(node, ast.Tuple):
            return tuple(self.eval_expr(elt, scope) for elt in node.elts)

        if isinstance(node, ast.Set):
            return {self.eval_expr(elt, scope) for elt in node.elts}

        if isinstance(node, ast.Dict):
            result = {}
            for k, v in zip(node.keys, node.values):
                if k is None:
                    # {**other}
                    result.update(self.eval_expr(v, scope))
                else:
                    result[self.eval_expr(k, scope)] = self.eval_expr(v, scope)
            return result

        if isinstance(node, ast.JoinedStr):
            parts = []
            for part in node.values:
                if isinstance(part, ast.Constant):
                    parts.append(str(part.value))
                else:
                    parts.append(self._format_value(part, scope))
            return "".join(parts)

        if isinstance(node, ast.FormattedValue):
            return self._format_value(node, scope)

        if isinstance(node, ast.Lambda):
            if node.args.vararg or node.args.kwarg or node.args.kwonlyargs:
                raise SandboxError("Only positional lambda parameters are supported")
            return _Lambda(node, scope, self)

        if isinstance(node, ast.ListComp):
            return self._comprehension(node.generators, scope, lambda s: self.eval_expr(node.elt, s))

        if isinstance(node, ast.GeneratorExp):
            return self._comprehension(node.generators, scope, lambda s: self.eval_expr(node.elt, s))

        if isinstance(node, ast.SetComp):
            return set(self._comprehension(node.generators, scope, lambda s: self.eval_expr(node.elt, s)))

        if isinstance(node, ast.DictComp):
            pairs = self._comprehension(
                node.generators,
                scope,
                lambda s: (self.eval_expr(node.key, s), self.eval_expr(node.value, s)),
            )
            return dict(pairs)

        raise SandboxError(f"Unsupported expression type: {type(node).__name__}")

    def _eval_slice(self, node: ast.expr, scope: _Scope) -> Any:
        if isinstance(node, ast.Slice):
            return slice(
                self.eval_expr(node.lower, scope) if node.lower is not None else None,
                self.eval_expr(node.upper, scope) if node.upper is not None else None,
                self.eval_expr(node.step, scope) if node.step is not None else None,
            )
        return self.eval_expr(node, scope)

    def _format_value(self, node: ast.FormattedValue, scope: _Scope) -> str:
        value = self.eval_expr(node.value, scope)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion == ord("s"):
            value = str(value)
        spec = ""
        if node.format_spec is not None:
            spec = self.eval_expr(node.format_spec, scope)
        return format(value, spec)

    def _comprehension(
        self,
        generators: List[ast.comprehension],
        scope: _Scope,
        produce: Callable[[_Scope], Any],
    ) -> list:
        results: list = []
        inner = _Scope(parent=scope)

        def walk(index: int) -> None:
            if index == len(generators):
                results.append(produce(inner))
                return
            gen = generators[index]
            if gen.is_async:
                raise SandboxError("Async comprehensions are not supported")
            for item in self.eval_expr(gen.iter, inner):
                self._tick()
                self._assign(gen.target, item, inner)
                if all(self.eval_expr(cond, inner) for cond in gen.ifs):
                    walk(index + 1)

        walk(0)
        return results

    def _binop(self, op_func: Callable, left: Any, right: Any) -> Any:
        if op_func is operator.pow and isinstance(right, int) and abs(right) > MAX_EXPONENT:
            raise SandboxError(f"Exponent too large ({right})")
        if op_func is operator.lshift and isinstance(right, int) and right > MAX_EXPONENT:
            raise SandboxError(f"Shift too large ({right})")
        if op_func is operator.mul:
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
                    if len(seq) * count > MAX_SEQUENCE_LENGTH:
                        raise SandboxError("Sequence repetition too large")
        return op_func(left, right)

    def _get_attribute(self, value: Any, attr: str) -> Any:
        self._check_attr(attr)

        if value is None:
            raise SandboxError(f"Cannot read '{attr}' of None")

        # Dict key access takes priority: result.status
        if isinstance(value, dict):
            if attr in value:
                return value[attr]
            if isinstance(value, NodeContext):
                return None
            if attr in _DICT_METHODS:
                return getattr(value, attr)
            if attr == "length":
                return len(value)
            raise SandboxError(f"Key '{attr}' not found in dict")

        if attr == "length" and isinstance(value, (str, list, tuple)):
            return len(value)
        if isinstance(value, str) and attr in _STR_METHODS:
            return getattr(value, attr)
        if isinstance(value, list) and attr in _LIST_METHODS:
            return getattr(value, attr)

        raise SandboxError(
            f"Attribute '{attr}' is not available on {type(value).__name__}"
        )

    def _call(self, node: ast.Call, scope: _Scope) -> Any:
        func = self.eval_expr(node.func, scope)

        if func is None:
            name = node.func.id if isinstance(node.func, ast.Name) else "value"
            raise SandboxError(f"'{name}' is not available in the sandbox")

        if not self._is_allowed_callable(func):
            raise SandboxError(f"Calling {type(func).__name__} is not allowed")

        args: List[Any] = []
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                args.extend(self.eval_expr(arg.value, scope))
            else:
                args.append(self.eval_expr(arg, scope))

        kwargs: Dict[str, Any] = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise SandboxError("Keyword unpacking is not supported")
            kwargs[kw.arg] = self.eval_expr(kw.value, scope)

        return func(*args, **kwargs)

    def _is_allowed_callable(self, func: Any) -> bool:
        if isinstance(func, _Lambda):
            return True
        if id(func) in _ALLOWED_CALLABLE_IDS or id(func) in self._utility_ids:
            return True
        # Bound methods handed out by _get_attribute
        owner = getattr(func, "__self__", None)
        if owner is not None and isinstance(owner, (str, list, dict)):
            return getattr(func, "__name__", "") in (_STR_METHODS | _LIST_METHODS | _DICT_METHODS)
        return False

    @staticmethod
    def _check_name(name: str) -> None:
        if name.startswith("__") and name != INTERNAL_IDENTIFIER:
            raise SandboxError(f"Access to '{name}' is not allowed")

    @staticmethod
    def _check_attr(attr: str) -> None:
        if attr.startswith("_"):
            raise SandboxError(f"Access to attribute '{attr}' is not allowed")


def build_scope(context: Dict[str, Any], utilities: Dict[str, Callable]) -> _Scope:
    """Build the root scope for one evaluation.

    The scope holds, in order of precedence: the reserved context mapping,
    the utility surface, allow-listed functions, and the denied ambient
    capabilities bound to ``None``.
    """
    variables: Dict[str, Any] = {name: None for name in DENIED_NAMES}
    variables.update(ALLOWED_FUNCTIONS)
    variables.update(utilities)
    variables[INTERNAL_IDENTIFIER] = NodeContext(context)
    return _Scope(variables)


def run_logic(
    source: str,
    context: Dict[str, Any],
    utilities: Optional[Dict[str, Callable]] = None,
    max_iterations: int = 100_000,
    timeout: Optional[float] = None,
) -> Any:
    """Parse and evaluate a logic body against a dependency context.

    Args:
        source: Logic body text (may reference ``$node``)
        context: Mapping of label -> {"data": result}
        utilities: Extra host callables exposed by name
        max_iterations: Loop/comprehension iteration budget
        timeout: Wall-clock limit in seconds, checked between statements

    Returns:
        The body's result value

    Raises:
        SandboxError: If the body fails to parse or evaluate
    """
    try:
        tree = parse_logic(source)
    except SyntaxError as e:
        raise SandboxError(f"Invalid script syntax: {e.msg} (line {e.lineno})") from e

    surface: Dict[str, Callable] = {"pretty": pretty, **(utilities or {})}
    interpreter = SandboxInterpreter(
        max_iterations=max_iterations, timeout=timeout, utilities=surface,
    )
    try:
        return interpreter.run(tree, build_scope(context, surface))
    except SandboxError:
        raise
    except ScriptFailure as e:
        raise SandboxError(str(e)) from e
    except RecursionError as e:
        raise SandboxError("Maximum nesting depth exceeded") from e
    except Exception as e:
        raise SandboxError(f"{type(e).__name__}: {e}") from e
