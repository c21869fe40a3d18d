from __future__ import annotations

import dataclasses
import itertools
import logging
from typing import Iterator, Optional

from parlang import abstract_syntax as ast
from parlang import types as t
from parlang.types import Type, TypeScheme
from parlang.unification import (
    ConstructorArityMismatch,
    FieldNotFound,
    RecordExpected,
    RecursionRequiresAnnotation,
    Substitution,
    TupleIndexOutOfBounds,
    UnboundVariable,
    UnificationError,
    UnknownType,
    compose,
    free_type_vars,
    scheme_free_type_vars,
    unify,
)

logger = logging.getLogger(__name__)

BASE_TYPES = {
    "Int": t.Int(),
    "Bool": t.Bool(),
    "Float": t.Float(),
    "Byte": t.Byte(),
    "Char": t.Char(),
    "Range": t.Range(),
    "Unit": t.UNIT,
}

NUMERIC = (t.Int(), t.Float(), t.Byte())
ORDERED = NUMERIC + (t.Char(),)


@dataclasses.dataclass(frozen=True)
class ConstructorScheme:
    type_name: str
    params: list[str]
    payload: list[ast.TypeExpression]


@dataclasses.dataclass
class TypeEnv:
    vars: dict[str, TypeScheme] = dataclasses.field(default_factory=dict)
    aliases: dict[str, Type] = dataclasses.field(default_factory=dict)
    sum_types: dict[str, int] = dataclasses.field(default_factory=dict)
    constructors: dict[str, ConstructorScheme] = dataclasses.field(
        default_factory=dict
    )
    counter: Iterator[int] = dataclasses.field(default_factory=itertools.count)
    rows: Iterator[int] = dataclasses.field(default_factory=itertools.count)

    def fresh_var(self) -> t.Var:
        return t.Var(t.TypeVar(next(self.counter)))

    def fresh_row(self) -> int:
        return next(self.rows)

    def lookup(self, name: str) -> Optional[TypeScheme]:
        return self.vars.get(name)

    def extend(self, name: str, scheme: TypeScheme) -> TypeEnv:
        return dataclasses.replace(self, vars={**self.vars, name: scheme})

    def extend_mono(self, name: str, ty: Type) -> TypeEnv:
        return self.extend(name, TypeScheme.mono(ty))

    def with_alias(self, name: str, ty: Type) -> TypeEnv:
        return dataclasses.replace(self, aliases={**self.aliases, name: ty})

    def with_sum_type(
        self,
        name: str,
        params: list[str],
        constructors: list[tuple[str, list[ast.TypeExpression]]],
    ) -> TypeEnv:
        ctors = dict(self.constructors)
        for ctor, payload in constructors:
            ctors[ctor] = ConstructorScheme(name, params, payload)
        return dataclasses.replace(
            self,
            sum_types={**self.sum_types, name: len(params)},
            constructors=ctors,
        )

    def apply(self, subst: Substitution) -> TypeEnv:
        return dataclasses.replace(
            self, vars={k: subst.apply_scheme(s) for k, s in self.vars.items()}
        )

    def free_type_vars(self) -> set[t.TypeVar]:
        return set().union(*map(scheme_free_type_vars, self.vars.values()))


def typecheck(expr: ast.Expression) -> Type:
    ty, subst = infer(expr, TypeEnv())
    ty = subst.apply(ty)
    logger.debug("inferred type %s", ty)
    return ty


def generalize(ty: Type, env: TypeEnv) -> TypeScheme:
    quantified = free_type_vars(ty) - env.free_type_vars()
    return TypeScheme(tuple(sorted(quantified, key=lambda v: v.id)), ty)


def instantiate(scheme: TypeScheme, env: TypeEnv) -> Type:
    fresh = Substitution({v: env.fresh_var() for v in scheme.vars})
    return fresh.apply(scheme.ty)


def infer(expr: ast.Expression, env: TypeEnv) -> tuple[Type, Substitution]:
    match expr:
        case ast.IntLit():
            return t.Int(), Substitution()
        case ast.BoolLit():
            return t.Bool(), Substitution()
        case ast.FloatLit():
            return t.Float(), Substitution()
        case ast.CharLit():
            return t.Char(), Substitution()
        case ast.ByteLit():
            return t.Byte(), Substitution()

        case ast.Var(name):
            scheme = env.lookup(name)
            if scheme is None:
                raise UnboundVariable(name)
            return instantiate(scheme, env), Substitution()

        case ast.BinOp(op, lhs, rhs):
            return infer_binop(op, lhs, rhs, env)

        case ast.Conditional(condition, consequence, alternative):
            tc, subst = infer(condition, env)
            subst = compose(unify(tc, t.Bool()), subst)
            tt, s = infer(consequence, env.apply(subst))
            subst = compose(s, subst)
            te, s = infer(alternative, env.apply(subst))
            subst = compose(s, subst)
            s = unify(subst.apply(tt), te)
            subst = compose(s, subst)
            return subst.apply(te), subst

        case ast.Let(var, val, body, ann):
            tv, subst = infer(val, env)
            if ann is not None:
                subst = compose(unify(subst.apply(tv), resolve_type(ann, env)), subst)
            env = env.apply(subst)
            scheme = generalize(subst.apply(tv), env)
            tb, s = infer(body, env.extend(var, scheme))
            return tb, compose(s, subst)

        case ast.Seq(bindings, body):
            subst = Substitution()
            for var, val in bindings:
                tv, s = infer(val, env)
                subst = compose(s, subst)
                env = env.apply(s)
                env = env.extend(var, generalize(s.apply(tv), env))
            tb, s = infer(body, env)
            return tb, compose(s, subst)

        case ast.Function(var, body, ann):
            tp = env.fresh_var() if ann is None else resolve_type(ann, env)
            tb, subst = infer(body, env.extend_mono(var, tp))
            return t.Fun(subst.apply(tp), tb), subst

        case ast.Application(fun, arg):
            tf, subst = infer(fun, env)
            ta, s = infer(arg, env.apply(subst))
            subst = compose(s, subst)
            tr = env.fresh_var()
            s = unify(subst.apply(tf), t.Fun(ta, tr))
            return s.apply(tr), compose(s, subst)

        case ast.Rec(name, ast.Function() as fun):
            # the function sees itself monomorphically
            tself = env.fresh_var()
            tf, subst = infer(fun, env.extend_mono(name, tself))
            s = unify(subst.apply(tself), tf)
            return s.apply(tf), compose(s, subst)

        case ast.Rec():
            raise RecursionRequiresAnnotation()

        case ast.Load():
            return env.fresh_var(), Substitution()

        case ast.Match(scrutinee, arms):
            return infer_match(scrutinee, arms, env)

        case ast.Tuple(items):
            tys, subst = infer_sequence(items, env)
            return t.Tuple(tuple(tys)), subst

        case ast.TupleProj(base, index):
            tb, subst = infer(base, env)
            match subst.apply(tb):
                case t.Tuple(items) if index < len(items):
                    return items[index], subst
                case t.Tuple(items):
                    raise TupleIndexOutOfBounds(index, len(items))
                case t.Var():
                    return env.fresh_var(), subst
                case other:
                    raise UnificationError(
                        other, t.Tuple(tuple(env.fresh_var() for _ in range(index + 1)))
                    )

        case ast.Record(fields):
            tys, subst = infer_sequence([e for _, e in fields], env)
            return t.Record.of({k: ty for (k, _), ty in zip(fields, tys)}), subst

        case ast.FieldAccess(base, field):
            tb, subst = infer(base, env)
            match subst.apply(tb):
                case t.Record() as record:
                    fields = record.field_map()
                    if field not in fields:
                        raise FieldNotFound(field, sorted(fields))
                    return fields[field], subst
                case t.Var() as var:
                    tfield = env.fresh_var()
                    s = unify(var, t.Record.of({field: tfield}, env.fresh_row()))
                    return s.apply(tfield), compose(s, subst)
                case other:
                    raise RecordExpected(str(other))

        case ast.TypeAlias(name, texpr, body):
            return infer(body, env.with_alias(name, resolve_type(texpr, env)))

        case ast.TypeDef(name, params, constructors, body):
            return infer(body, env.with_sum_type(name, params, constructors))

        case ast.Constructor(name, args):
            return infer_constructor(name, args, env)

        case ast.Array(items):
            elem = env.fresh_var()
            tys, subst = infer_sequence(items, env)
            for ty in tys:
                subst = compose(unify(subst.apply(elem), subst.apply(ty)), subst)
            return t.Array(subst.apply(elem)), subst

        case ast.ArrayIndex(base, index):
            ta, subst = infer(base, env)
            ti, s = infer(index, env.apply(subst))
            subst = compose(s, subst)
            elem = env.fresh_var()
            subst = compose(unify(subst.apply(ta), t.Array(elem)), subst)
            subst = compose(unify(subst.apply(ti), t.Int()), subst)
            return subst.apply(elem), subst

        case ast.Range(start, end):
            tys, subst = infer_sequence([start, end], env)
            for ty in tys:
                subst = compose(unify(subst.apply(ty), t.Int()), subst)
            return t.Range(), subst

        case ast.NewRef(init):
            ty, subst = infer(init, env)
            return t.Ref(ty), subst

        case ast.RefGet(ref):
            ty, subst = infer(ref, env)
            inner = env.fresh_var()
            s = unify(ty, t.Ref(inner))
            return s.apply(inner), compose(s, subst)

        case ast.RefSet(ref, val):
            tys, subst = infer_sequence([ref, val], env)
            tr, tv = (subst.apply(ty) for ty in tys)
            subst = compose(unify(tr, t.Ref(tv)), subst)
            return t.UNIT, subst

        case _:
            raise NotImplementedError(expr)


def infer_sequence(
    exprs: list[ast.Expression], env: TypeEnv
) -> tuple[list[Type], Substitution]:
    """Infer expressions left to right, each seeing the substitutions of those before."""
    subst = Substitution()
    tys = []
    for e in exprs:
        ty, s = infer(e, env.apply(subst))
        subst = compose(s, subst)
        tys.append(ty)
    return [subst.apply(ty) for ty in tys], subst


def infer_binop(
    op: ast.Op, lhs: ast.Expression, rhs: ast.Expression, env: TypeEnv
) -> tuple[Type, Substitution]:
    (tl, tr), subst = infer_sequence([lhs, rhs], env)

    if op in ast.EQUALITY_OPS:
        subst = compose(unify(tl, tr), subst)
        return t.Bool(), subst

    subst = compose(unify(tl, tr), subst)
    operand = subst.apply(tl)
    if isinstance(operand, t.Var):
        # operands still unconstrained after unifying them default to Int
        subst = compose(unify(operand, t.Int()), subst)
        operand = t.Int()

    candidates = NUMERIC if op in ast.ARITHMETIC_OPS else ORDERED
    if operand not in candidates:
        raise UnificationError(operand, t.Int())

    if op in ast.ARITHMETIC_OPS:
        return operand, subst
    return t.Bool(), subst


def infer_match(
    scrutinee: ast.Expression, arms: list[ast.MatchArm], env: TypeEnv
) -> tuple[Type, Substitution]:
    ts, subst = infer(scrutinee, env)
    result = env.fresh_var()
    for arm in arms:
        tp, bound, s = infer_pattern(arm.pattern, env.apply(subst))
        subst = compose(s, subst)
        subst = compose(unify(subst.apply(ts), subst.apply(tp)), subst)

        arm_env = env.apply(subst)
        for name, ty in bound.items():
            arm_env = arm_env.extend_mono(name, subst.apply(ty))
        tb, s = infer(arm.body, arm_env)
        subst = compose(s, subst)
        subst = compose(unify(subst.apply(result), tb), subst)
    return subst.apply(result), subst


def infer_pattern(
    pattern: ast.Pattern, env: TypeEnv
) -> tuple[Type, dict[str, Type], Substitution]:
    """Type a pattern, returning its type and the types of the variables it binds."""
    match pattern:
        case ast.WildcardPattern():
            return env.fresh_var(), {}, Substitution()
        case ast.VarPattern(name):
            tv = env.fresh_var()
            return tv, {name: tv}, Substitution()
        case ast.LiteralPattern(lit):
            ty, subst = infer(lit, env)
            return ty, {}, subst
        case ast.TuplePattern(items):
            tys, bound, subst = infer_patterns(items, env)
            return t.Tuple(tuple(tys)), bound, subst
        case ast.RecordPattern(fields):
            tys, bound, subst = infer_patterns([p for _, p in fields], env)
            record = t.Record.of(
                {name: ty for (name, _), ty in zip(fields, tys)}, env.fresh_row()
            )
            return record, bound, subst
        case ast.ConstructorPattern(name, args):
            scheme = env.constructors.get(name)
            tys, bound, subst = infer_patterns(args, env)
            if scheme is None:
                return env.fresh_var(), bound, subst
            payload, result = instantiate_constructor(name, scheme, env)
            if len(payload) != len(args):
                raise ConstructorArityMismatch(name, len(payload), len(args))
            for expected, ty in zip(payload, tys):
                subst = compose(unify(subst.apply(expected), subst.apply(ty)), subst)
            return subst.apply(result), bound, subst
        case _:
            raise NotImplementedError(pattern)


def infer_patterns(
    patterns: list[ast.Pattern], env: TypeEnv
) -> tuple[list[Type], dict[str, Type], Substitution]:
    subst = Substitution()
    tys = []
    bound = {}
    for p in patterns:
        ty, b, s = infer_pattern(p, env)
        subst = compose(s, subst)
        tys.append(ty)
        bound.update(b)
    return [subst.apply(ty) for ty in tys], bound, subst


def instantiate_constructor(
    name: str, scheme: ConstructorScheme, env: TypeEnv
) -> tuple[list[Type], t.SumType]:
    params = {p: env.fresh_var() for p in scheme.params}
    payload = [resolve_type(te, env, params) for te in scheme.payload]
    return payload, t.SumType(scheme.type_name, tuple(params.values()))


def infer_constructor(
    name: str, args: list[ast.Expression], env: TypeEnv
) -> tuple[Type, Substitution]:
    scheme = env.constructors.get(name)
    if scheme is None:
        return env.fresh_var(), Substitution()

    payload, result = instantiate_constructor(name, scheme, env)

    if not args and payload:
        # used as a function: curried over its payload
        ty = result
        for p in reversed(payload):
            ty = t.Fun(p, ty)
        return ty, Substitution()

    if len(args) != len(payload):
        raise ConstructorArityMismatch(name, len(payload), len(args))

    tys, subst = infer_sequence(args, env)
    for expected, ty in zip(payload, tys):
        subst = compose(unify(subst.apply(expected), subst.apply(ty)), subst)
    return subst.apply(result), subst


def resolve_type(
    texpr: ast.TypeExpression, env: TypeEnv, params: Optional[dict[str, Type]] = None
) -> Type:
    """Turn a type annotation into a type.

    Lowercase names not found in `params` become fresh type variables, shared
    by every occurrence within the same annotation.
    """
    if params is None:
        params = {}

    match texpr:
        case ast.TypeLiteral(name) if name in params:
            return params[name]
        case ast.TypeLiteral(name) if name in BASE_TYPES:
            return BASE_TYPES[name]
        case ast.TypeLiteral(name) if name in env.aliases:
            return env.aliases[name]
        case ast.TypeLiteral(name) if env.sum_types.get(name) == 0:
            return t.SumType(name)
        case ast.TypeLiteral(name) if name[0].islower():
            params[name] = env.fresh_var()
            return params[name]
        case ast.TypeLiteral(name):
            raise UnknownType(name)
        case ast.FuncType(arg, ret):
            return t.Fun(resolve_type(arg, env, params), resolve_type(ret, env, params))
        case ast.TypeApplication("Ref", [inner]):
            return t.Ref(resolve_type(inner, env, params))
        case ast.TypeApplication("Array", [inner]):
            return t.Array(resolve_type(inner, env, params))
        case ast.TypeApplication(name, args) if env.sum_types.get(name) == len(args):
            return t.SumType(name, tuple(resolve_type(a, env, params) for a in args))
        case ast.TypeApplication(name, _):
            raise UnknownType(name)
        case ast.TupleType(items):
            return t.Tuple(tuple(resolve_type(x, env, params) for x in items))
        case _:
            raise NotImplementedError(texpr)
