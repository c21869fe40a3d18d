from __future__ import annotations

import dataclasses
import logging
import operator

from parlang import abstract_syntax as ast, loader
from parlang import values as v
from parlang.parser import ParseError
from parlang.patterns import match_pattern
from parlang.values import ConstructorInfo, Environment, Value

logger = logging.getLogger(__name__)


class EvalError(Exception):
    pass


@dataclasses.dataclass
class UnboundVariable(EvalError):
    name: str

    def __str__(self):
        return f"Unbound variable: {self.name}"


@dataclasses.dataclass
class EvalTypeError(EvalError):
    msg: str

    def __str__(self):
        return f"Type error: {self.msg}"


class DivisionByZero(EvalError):
    def __str__(self):
        return "Division by zero"


@dataclasses.dataclass
class LoadError(EvalError):
    msg: str

    def __str__(self):
        return f"Load error: {self.msg}"


@dataclasses.dataclass
class IndexOutOfBounds(EvalError):
    msg: str

    def __str__(self):
        return f"Index out of bounds: {self.msg}"


@dataclasses.dataclass
class FieldNotFound(EvalError):
    field: str
    available: list[str]

    def __str__(self):
        return (
            f"Field '{self.field}' not found. "
            f"Available fields: [{', '.join(self.available)}]"
        )


@dataclasses.dataclass
class RecordExpected(EvalError):
    got: str

    def __str__(self):
        return f"Expected record, got {self.got}"


class PatternMatchNonExhaustive(EvalError):
    def __str__(self):
        return "Non-exhaustive pattern match"


FUNCTION_VALUES = (v.Closure, v.RecClosure, v.ConstructorFunction)

INT_MIN = -(2**63)
INT_MAX = 2**63 - 1

_ARITHMETIC = {"+": operator.add, "-": operator.sub, "*": operator.mul}
_COMPARE = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def evaluate(expr: ast.Expression, env: Environment) -> Value:
    while True:
        match expr:
            case ast.IntLit(val):
                return v.Int(val)
            case ast.BoolLit(val):
                return v.Bool(val)
            case ast.FloatLit(val):
                return v.Float(val)
            case ast.CharLit(val):
                return v.Char(val)
            case ast.ByteLit(val):
                return v.Byte(val)
            case ast.Var(name):
                val = env.lookup(name)
                if val is None:
                    raise UnboundVariable(name)
                return val
            case ast.BinOp(op, lhs, rhs):
                a = evaluate(lhs, env)
                b = evaluate(rhs, env)
                return eval_binop(op, a, b)
            case ast.Conditional(condition, consequence, alternative):
                if eval_condition(condition, env):
                    expr = consequence
                else:
                    expr = alternative
            case ast.Let(var, val, body):
                env = env.extend(var, evaluate(val, env))
                expr = body
            case ast.Seq(bindings, body):
                for var, val in bindings:
                    env = env.extend(var, evaluate(val, env))
                expr = body
            case ast.Function(var, body):
                return v.Closure(var, body, env)
            case ast.Rec(name, ast.Function(var, body)):
                return v.RecClosure(name, var, body, env)
            case ast.Rec(name, _):
                raise EvalTypeError(f"rec {name} requires a function body")
            case ast.Application():
                fun, arg_exprs = application_spine(expr)
                fval = evaluate(fun, env)
                if isinstance(fval, v.RecClosure):
                    return call_rec(fval, arg_exprs, env)
                for a in arg_exprs:
                    fval = apply_function(fval, [evaluate(a, env)])
                return fval
            case ast.Match(scrutinee, arms):
                val = evaluate(scrutinee, env)
                for arm in arms:
                    arm_env = match_pattern(arm.pattern, val, env)
                    if arm_env is not None:
                        env = arm_env
                        expr = arm.body
                        break
                else:
                    raise PatternMatchNonExhaustive()
            case ast.Tuple(items):
                return v.Tuple(tuple(evaluate(x, env) for x in items))
            case ast.TupleProj(base, index):
                return eval_tuple_proj(evaluate(base, env), index)
            case ast.Record(fields):
                return v.Record({k: evaluate(x, env) for k, x in fields})
            case ast.FieldAccess(base, field):
                return eval_field_access(evaluate(base, env), field)
            case ast.TypeDef(name, _, constructors, body):
                env = register_constructors(name, constructors, env)
                expr = body
            case ast.TypeAlias(_, _, body):
                expr = body
            case ast.Constructor(name, args):
                return eval_constructor(name, [evaluate(a, env) for a in args], env)
            case ast.Array(items):
                return v.Array(tuple(evaluate(x, env) for x in items))
            case ast.ArrayIndex(base, index):
                return eval_array_index(evaluate(base, env), evaluate(index, env))
            case ast.Range(start, end):
                return eval_range(evaluate(start, env), evaluate(end, env))
            case ast.NewRef(init):
                return v.Reference.new(evaluate(init, env))
            case ast.RefGet(ref):
                return expect_reference(evaluate(ref, env)).cell.val
            case ast.RefSet(ref, val):
                r = expect_reference(evaluate(ref, env))
                r.cell.val = evaluate(val, env)
                return v.UNIT
            case ast.Load(path, body):
                env = env.merge(load_bindings(path))
                expr = body
            case _:
                raise NotImplementedError(expr)


def eval_condition(condition: ast.Expression, env: Environment) -> bool:
    match evaluate(condition, env):
        case v.Bool(b):
            return b
        case other:
            raise EvalTypeError(f"If condition must be a boolean, got {other}")


def application_spine(
    expr: ast.Expression,
) -> tuple[ast.Expression, list[ast.Expression]]:
    """Split `f a b c` into `f` and `[a, b, c]`."""
    args = []
    while isinstance(expr, ast.Application):
        args.append(expr.arg)
        expr = expr.fun
    return expr, args[::-1]


def apply_function(fval: Value, args: list[Value]) -> Value:
    while args:
        match fval:
            case v.RecClosure():
                fval = apply_rec(fval, args[0])
            case v.Closure(param, body, cenv):
                fval = evaluate(body, cenv.extend(param, args[0]))
            case v.ConstructorFunction(name, arity, collected):
                collected = collected + (args[0],)
                if len(collected) == arity:
                    fval = v.Variant(name, collected)
                else:
                    fval = v.ConstructorFunction(name, arity, collected)
            case _:
                raise EvalTypeError(f"Cannot apply non-function value {fval}")
        args = args[1:]
    return fval


def apply_rec(fn: v.RecClosure, arg: Value) -> Value:
    env = fn.env.extend(fn.name, fn).extend(fn.param, arg)
    return run_trampoline(fn, fn.body, env)


def call_rec(
    fn: v.RecClosure, arg_exprs: list[ast.Expression], arg_env: Environment
) -> Value:
    env, body, rest = bind_rec_args(fn, arg_exprs, arg_env)
    return apply_rest(run_trampoline(fn, body, env), rest, arg_env)


def apply_rest(
    fval: Value, arg_exprs: list[ast.Expression], arg_env: Environment
) -> Value:
    for a in arg_exprs:
        fval = apply_function(fval, [evaluate(a, arg_env)])
    return fval


def bind_rec_args(
    fn: v.RecClosure, arg_exprs: list[ast.Expression], arg_env: Environment
) -> tuple[Environment, ast.Expression, list[ast.Expression]]:
    """Bind the function's own name and its leading curried parameters.

    Arguments are evaluated one at a time in `arg_env`. Binding continues
    only while the body is directly another `fun`, so no effect of the body
    can run before a later argument is evaluated. The unbound rest is
    returned.
    """
    first = evaluate(arg_exprs[0], arg_env)
    env = fn.env.extend(fn.name, fn).extend(fn.param, first)
    body = fn.body
    rest = arg_exprs[1:]
    while rest and isinstance(body, ast.Function):
        env = env.extend(body.var, evaluate(rest[0], arg_env))
        body = body.body
        rest = rest[1:]
    return env, body, rest


def run_trampoline(fn: v.RecClosure, expr: ast.Expression, env: Environment) -> Value:
    """Evaluate the body of `fn`, looping on self tail calls instead of recursing.

    Only calls in tail position reached through chains of `if` are recognized;
    every other shape is handed to `evaluate` and ends the loop.
    """
    while True:
        match expr:
            case ast.Application() if is_self_call(expr, fn, env):
                _, arg_exprs = application_spine(expr)
                logger.debug("self tail call to %s", fn.name)
                arg_env = env
                env, expr, rest = bind_rec_args(fn, arg_exprs, arg_env)
                if rest:
                    return apply_rest(run_trampoline(fn, expr, env), rest, arg_env)
            case ast.Conditional(condition, consequence, alternative):
                if eval_condition(condition, env):
                    expr = consequence
                else:
                    expr = alternative
            case _:
                return evaluate(expr, env)


def is_self_call(expr: ast.Application, fn: v.RecClosure, env: Environment) -> bool:
    match application_spine(expr):
        case ast.Var(name), _ if name == fn.name:
            callee = env.lookup(name)
            return isinstance(callee, v.RecClosure) and callee.body is fn.body
        case _:
            return False


def eval_binop(op: ast.Op, a: Value, b: Value) -> Value:
    match op:
        case "==":
            return v.Bool(values_equal(a, b))
        case "!=":
            return v.Bool(not values_equal(a, b))

    match a, b:
        case v.Int(x), v.Int(y):
            if op == "/":
                if y == 0:
                    raise DivisionByZero()
                return checked_int(int_div(x, y))
            if op in _COMPARE:
                return v.Bool(_COMPARE[op](x, y))
            return checked_int(_ARITHMETIC[op](x, y))
        case v.Float(x), v.Float(y):
            if op == "/":
                if y == 0.0:
                    raise DivisionByZero()
                return v.Float(x / y)
            if op in _COMPARE:
                return v.Bool(_COMPARE[op](x, y))
            return v.Float(_ARITHMETIC[op](x, y))
        case v.Byte(x), v.Byte(y):
            if op in _COMPARE:
                return v.Bool(_COMPARE[op](x, y))
            if op == "/":
                if y == 0:
                    raise DivisionByZero()
                return v.Byte(x // y)
            return checked_byte(_ARITHMETIC[op](x, y))
        case v.Char(x), v.Char(y) if op in _COMPARE:
            return v.Bool(_COMPARE[op](x, y))
        case _:
            raise EvalTypeError(f"Invalid operands for {op}: {a} and {b}")


def int_div(x: int, y: int) -> int:
    # truncate toward zero
    q = abs(x) // abs(y)
    return q if (x < 0) == (y < 0) else -q


def checked_int(n: int) -> v.Int:
    if not INT_MIN <= n <= INT_MAX:
        raise EvalTypeError(f"Integer overflow: {n} does not fit in 64 bits")
    return v.Int(n)


def checked_byte(n: int) -> v.Byte:
    if n > 255:
        raise EvalTypeError(f"Byte overflow: {n} does not fit in 0..255")
    if n < 0:
        raise EvalTypeError(f"Byte underflow: {n} does not fit in 0..255")
    return v.Byte(n)


def values_equal(a: Value, b: Value) -> bool:
    if isinstance(a, FUNCTION_VALUES) or isinstance(b, FUNCTION_VALUES):
        raise EvalTypeError("Cannot compare functions")

    match a, b:
        case (v.Tuple(xs), v.Tuple(ys)) | (v.Array(xs), v.Array(ys)):
            return len(xs) == len(ys) and all(map(values_equal, xs, ys))
        case v.Variant(c1, xs), v.Variant(c2, ys):
            return c1 == c2 and len(xs) == len(ys) and all(map(values_equal, xs, ys))
        case v.Record(f1), v.Record(f2):
            return f1.keys() == f2.keys() and all(
                values_equal(f1[k], f2[k]) for k in f1
            )
        case _:
            return a == b


def eval_tuple_proj(val: Value, index: int) -> Value:
    match val:
        case v.Tuple(items):
            if index >= len(items):
                raise IndexOutOfBounds(
                    f"tuple index {index} out of bounds for tuple of size {len(items)}"
                )
            return items[index]
        case _:
            raise EvalTypeError(f"Tuple projection requires a tuple, got {val}")


def eval_field_access(val: Value, field: str) -> Value:
    match val:
        case v.Record(fields):
            try:
                return fields[field]
            except KeyError:
                raise FieldNotFound(field, list(fields)) from None
        case _:
            raise RecordExpected(str(val))


def eval_array_index(arr: Value, idx: Value) -> Value:
    match arr, idx:
        case v.Array(items), v.Int(i):
            if i < 0:
                raise IndexOutOfBounds(f"negative index {i}")
            if i >= len(items):
                raise IndexOutOfBounds(
                    f"index {i} out of bounds for array of size {len(items)}"
                )
            return items[i]
        case v.Array(), _:
            raise EvalTypeError(f"Array index must be an integer, got {idx}")
        case _:
            raise EvalTypeError(f"Array indexing requires an array, got {arr}")


def eval_range(start: Value, end: Value) -> Value:
    match start, end:
        case v.Int(a), v.Int(b):
            return v.Range(a, b)
        case _:
            raise EvalTypeError(f"Range bounds must be integers, got {start} and {end}")


def expect_reference(val: Value) -> v.Reference:
    if not isinstance(val, v.Reference):
        raise EvalTypeError(f"Expected a reference, got {val}")
    return val


def register_constructors(
    type_name: str,
    constructors: list[tuple[str, list[ast.TypeExpression]]],
    env: Environment,
) -> Environment:
    for name, payload in constructors:
        env = env.register_constructor(name, ConstructorInfo(type_name, len(payload)))
    return env


def eval_constructor(name: str, args: list[Value], env: Environment) -> Value:
    info = env.get_constructor(name)
    if info is None:
        raise EvalTypeError(f"Unknown constructor: {name}")
    if len(args) == info.arity:
        return v.Variant(name, tuple(args))
    if not args:
        return v.ConstructorFunction(name, info.arity)
    raise EvalTypeError(
        f"Constructor {name} expects {info.arity} arguments, but got {len(args)}"
    )


def load_bindings(path: str) -> Environment:
    try:
        program = loader.load_program(path)
    except (OSError, ParseError) as e:
        raise LoadError(f"{path}: {e}") from e
    return extract_bindings(program, Environment())


def extract_bindings(expr: ast.Expression, env: Environment) -> Environment:
    """Collect the top-level bindings of a program into `env`.

    Descends through `let`, sequences, `load` and type definitions and stops
    at the first expression that binds nothing.
    """
    while True:
        match expr:
            case ast.Let(var, val, body):
                env = env.extend(var, evaluate(val, env))
                expr = body
            case ast.Seq(bindings, body):
                for var, val in bindings:
                    env = env.extend(var, evaluate(val, env))
                expr = body
            case ast.Load(path, body):
                env = env.merge(load_bindings(path))
                expr = body
            case ast.TypeDef(name, _, constructors, body):
                env = register_constructors(name, constructors, env)
                expr = body
            case ast.TypeAlias(_, _, body):
                expr = body
            case _:
                logger.debug("extracted bindings: %s", [k for k, _ in env.items()])
                return env
