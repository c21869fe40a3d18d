import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from parlang import abstract_syntax as ast
from parlang import exhaustiveness, interpreter, loader, parser, type_checker
from parlang.interpreter import EvalError
from parlang.parser import ParseError
from parlang.unification import TypeCheckError
from parlang.values import Environment, Value

logger = logging.getLogger(__name__)

PROMPT = "> "
CONTINUATION_PROMPT = "... "
SEARCH_PATH_VARIABLE = "PARLANG_PATH"


def warn_non_exhaustive(program: ast.Expression, env: Environment):
    for _, result in exhaustiveness.non_exhaustive_matches(program, env):
        print(
            f"Warning: non-exhaustive match, missing: {', '.join(result.missing)}",
            file=sys.stderr,
        )


def read_program(path: str) -> ast.Expression:
    with open(path) as fd:
        src = fd.read()
    program = parser.parse_program(src)
    logger.debug("AST: %s", program)
    return program


def run_file(path: str, typecheck: bool = False, check_matches: bool = True) -> int:
    try:
        program = read_program(path)
        if typecheck:
            print(f"Type: {type_checker.typecheck(program)}")
        if check_matches:
            warn_non_exhaustive(program, Environment())
        value = interpreter.evaluate(program, Environment())
    except (OSError, ParseError, TypeCheckError, EvalError, RecursionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(value)
    return 0


def check_file(path: str) -> int:
    try:
        ty = type_checker.typecheck(read_program(path))
    except (OSError, ParseError, TypeCheckError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(ty)
    return 0


class Repl:
    def __init__(self, check_matches: bool = True):
        self.env = Environment()
        self.check_matches = check_matches

    def read_program(self) -> Optional[ast.Expression]:
        src = input(PROMPT)
        if not src.strip():
            return None
        while True:
            try:
                return parser.parse_program(src)
            except ParseError:
                line = input(CONTINUATION_PROMPT)
                if not line.strip():
                    # input is complete; report the error
                    return parser.parse_program(src)
                src += "\n" + line

    def eval_program(self, program: ast.Expression) -> Value:
        if self.check_matches:
            warn_non_exhaustive(program, self.env)
        value = interpreter.evaluate(program, self.env)
        try:
            self.env = interpreter.extract_bindings(program, self.env)
        except EvalError as e:
            print(f"Warning: bindings not kept: {e}", file=sys.stderr)
        return value

    def run(self):
        while True:
            try:
                program = self.read_program()
                if program is not None:
                    print(self.eval_program(program))
            except EOFError:
                print("\nGoodbye!")
                return
            except (ParseError, EvalError, RecursionError) as e:
                print(f"Error: {e}")


def configure(args: argparse.Namespace):
    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    if search_path := os.environ.get(SEARCH_PATH_VARIABLE):
        loader.SEARCH_PATH[:] = [Path(p) for p in search_path.split(os.pathsep)]


def run_command(args: argparse.Namespace) -> int:
    configure(args)
    return run_file(args.program_file, args.typecheck, not args.no_exhaustiveness)


def check_command(args: argparse.Namespace) -> int:
    configure(args)
    return check_file(args.program_file)


def repl_command(args: argparse.Namespace) -> int:
    configure(args)
    Repl(check_matches=not args.no_exhaustiveness).run()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    arg_parser = argparse.ArgumentParser(prog="parlang")
    subparsers = arg_parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="evaluate a program file")
    run.set_defaults(func=run_command)
    run.add_argument("program_file")
    run.add_argument("--typecheck", action="store_true")
    run.add_argument("--no-exhaustiveness", action="store_true")
    run.add_argument("--debug", action="store_true")

    check = subparsers.add_parser("check", help="infer the type of a program file")
    check.set_defaults(func=check_command)
    check.add_argument("program_file")
    check.add_argument("--debug", action="store_true")

    repl = subparsers.add_parser("repl", help="start an interactive session")
    repl.set_defaults(func=repl_command)
    repl.add_argument("--no-exhaustiveness", action="store_true")
    repl.add_argument("--debug", action="store_true")

    args = arg_parser.parse_args(argv)
    if not args.command:
        args.debug = False
        args.no_exhaustiveness = False
        return repl_command(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
