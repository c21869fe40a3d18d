from typing import Optional

from parlang import abstract_syntax as ast
from parlang import values as v
from parlang.values import Environment, Value


def match_pattern(
    pattern: ast.Pattern, value: Value, env: Environment
) -> Optional[Environment]:
    """Match `value` against `pattern`.

    Returns `env` extended with the pattern's variables, or None if the value
    does not match. The input environment is never modified, so a failed
    match leaves no partial bindings behind.
    """
    match pattern, value:
        case ast.WildcardPattern(), _:
            return env
        case ast.VarPattern(name), _:
            return env.extend(name, value)
        case ast.LiteralPattern(lit), _:
            return env if literal_matches(lit, value) else None
        case ast.TuplePattern(items), v.Tuple(vals):
            if len(items) != len(vals):
                return None
            return match_all(items, vals, env)
        case ast.RecordPattern(fields), v.Record(vals):
            for name, pat in fields:
                if name not in vals:
                    return None
                env = match_pattern(pat, vals[name], env)
                if env is None:
                    return None
            return env
        case ast.ConstructorPattern(name, args), v.Variant(ctor, vals):
            if name != ctor or len(args) != len(vals):
                return None
            return match_all(args, vals, env)
        case _:
            return None


def match_all(
    patterns: list[ast.Pattern], vals: tuple[Value, ...], env: Environment
) -> Optional[Environment]:
    for pat, val in zip(patterns, vals):
        env = match_pattern(pat, val, env)
        if env is None:
            return None
    return env


def literal_matches(lit: ast.Literal, value: Value) -> bool:
    match lit, value:
        case ast.IntLit(a), v.Int(b):
            return a == b
        case ast.BoolLit(a), v.Bool(b):
            return a == b
        case ast.FloatLit(a), v.Float(b):
            return a == b
        case ast.CharLit(a), v.Char(b):
            return a == b
        case ast.ByteLit(a), v.Byte(b):
            return a == b
        case _:
            return False
