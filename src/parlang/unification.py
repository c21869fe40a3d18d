from __future__ import annotations

import dataclasses
from typing import Optional

from parlang import types as t
from parlang.types import Type, TypeScheme, TypeVar


class TypeCheckError(Exception):
    pass


@dataclasses.dataclass
class UnboundVariable(TypeCheckError):
    name: str

    def __str__(self):
        return f"Unbound variable: {self.name}"


@dataclasses.dataclass
class UnificationError(TypeCheckError):
    t1: Type
    t2: Type

    def __str__(self):
        return f"Cannot unify types: {self.t1} and {self.t2}"


@dataclasses.dataclass
class OccursCheckFailed(TypeCheckError):
    var: TypeVar
    ty: Type

    def __str__(self):
        return f"Occurs check failed: {self.var} occurs in {self.ty}"


class RecursionRequiresAnnotation(TypeCheckError):
    def __str__(self):
        return "Recursive functions require type annotations"


@dataclasses.dataclass
class FieldNotFound(TypeCheckError):
    field: str
    available: list[str]

    def __str__(self):
        return (
            f"Field '{self.field}' not found. "
            f"Available fields: [{', '.join(self.available)}]"
        )


@dataclasses.dataclass
class RecordExpected(TypeCheckError):
    got: str

    def __str__(self):
        return f"Expected record type, got {self.got}"


class RecordFieldMismatch(TypeCheckError):
    def __str__(self):
        return "Record types have different fields"


@dataclasses.dataclass
class ConstructorArityMismatch(TypeCheckError):
    name: str
    expected: int
    actual: int

    def __str__(self):
        return (
            f"Constructor '{self.name}' expects {self.expected} arguments, "
            f"but got {self.actual}"
        )


@dataclasses.dataclass
class UnknownType(TypeCheckError):
    name: str

    def __str__(self):
        return f"Unknown type: {self.name}"


@dataclasses.dataclass
class TupleIndexOutOfBounds(TypeCheckError):
    index: int
    size: int

    def __str__(self):
        return f"Tuple index {self.index} out of bounds for tuple of size {self.size}"


class Substitution:
    def __init__(self, subs: Optional[dict[TypeVar, Type]] = None):
        self.subs = subs or {}

    def __repr__(self):
        return "{" + ", ".join(f"{k} ↦ {v}" for k, v in self.subs.items()) + "}"

    def apply(self, ty: Type, visited: frozenset[TypeVar] = frozenset()) -> Type:
        match ty:
            case t.Var(var):
                if var in visited or var not in self.subs:
                    return ty
                return self.apply(self.subs[var], visited | {var})
            case t.Fun(arg, ret):
                return t.Fun(self.apply(arg, visited), self.apply(ret, visited))
            case t.Record(fields, row):
                return t.Record(tuple((k, self.apply(f, visited)) for k, f in fields), row)
            case t.SumType(name, args):
                return t.SumType(name, tuple(self.apply(a, visited) for a in args))
            case t.Tuple(items):
                return t.Tuple(tuple(self.apply(x, visited) for x in items))
            case t.Ref(inner):
                return t.Ref(self.apply(inner, visited))
            case t.Array(elem):
                return t.Array(self.apply(elem, visited))
            case _:
                return ty

    def apply_scheme(self, scheme: TypeScheme) -> TypeScheme:
        inner = Substitution(
            {k: v for k, v in self.subs.items() if k not in scheme.vars}
        )
        return TypeScheme(scheme.vars, inner.apply(scheme.ty))


def compose(s1: Substitution, s2: Substitution) -> Substitution:
    """Apply `s1` through the range of `s2`, then let `s1`'s own entries win."""
    subs = {var: s1.apply(ty) for var, ty in s2.subs.items()}
    subs.update(s1.subs)
    return Substitution(subs)


def free_type_vars(ty: Type) -> set[TypeVar]:
    match ty:
        case t.Var(var):
            return {var}
        case t.Fun(arg, ret):
            return free_type_vars(arg) | free_type_vars(ret)
        case t.Record(fields, _):
            return set().union(*(free_type_vars(f) for _, f in fields))
        case t.SumType(_, items) | t.Tuple(items):
            return set().union(*map(free_type_vars, items))
        case t.Ref(inner) | t.Array(inner):
            return free_type_vars(inner)
        case _:
            return set()


def scheme_free_type_vars(scheme: TypeScheme) -> set[TypeVar]:
    return free_type_vars(scheme.ty) - set(scheme.vars)


def unify(t1: Type, t2: Type) -> Substitution:
    match t1, t2:
        case _ if t1 == t2:
            return Substitution()
        case t.Var(var), _:
            return bind_var(var, t2)
        case _, t.Var(var):
            return bind_var(var, t1)
        case t.Fun(a1, r1), t.Fun(a2, r2):
            s1 = unify(a1, a2)
            s2 = unify(s1.apply(r1), s1.apply(r2))
            return compose(s2, s1)
        case t.Record(), t.Record():
            return unify_records(t1, t2)
        case t.SumType(n1, args1), t.SumType(n2, args2) if (
            n1 == n2 and len(args1) == len(args2)
        ):
            return unify_pairwise(args1, args2)
        case t.Tuple(items1), t.Tuple(items2) if len(items1) == len(items2):
            return unify_pairwise(items1, items2)
        case (t.Ref(a), t.Ref(b)) | (t.Array(a), t.Array(b)):
            return unify(a, b)
        case _:
            raise UnificationError(t1, t2)


def bind_var(var: TypeVar, ty: Type) -> Substitution:
    if ty == t.Var(var):
        return Substitution()
    if var in free_type_vars(ty):
        raise OccursCheckFailed(var, ty)
    return Substitution({var: ty})


def unify_pairwise(xs, ys) -> Substitution:
    subst = Substitution()
    for x, y in zip(xs, ys):
        s = unify(subst.apply(x), subst.apply(y))
        subst = compose(s, subst)
    return subst


def unify_records(r1: t.Record, r2: t.Record) -> Substitution:
    """Unify two record types.

    Closed records need identical field sets. An open record unifies with any
    record that has at least its fields. Two open records with different rows
    must agree on their fields, since rows are not substituted.
    """
    f1 = r1.field_map()
    f2 = r2.field_map()

    match r1.row, r2.row:
        case None, None:
            if f1.keys() != f2.keys():
                raise RecordFieldMismatch()
        case _, None:
            check_fields_present(f1, f2)
        case None, _:
            check_fields_present(f2, f1)
        case row1, row2 if row1 != row2 and f1.keys() != f2.keys():
            raise RecordFieldMismatch()

    common = [name for name in sorted(f1) if name in f2]
    return unify_pairwise([f1[n] for n in common], [f2[n] for n in common])


def check_fields_present(required: dict[str, Type], available: dict[str, Type]):
    for name in sorted(required):
        if name not in available:
            raise FieldNotFound(name, sorted(available))
