import pytest

from parlang import loader, main


def feed(monkeypatch, lines):
    remaining = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr("builtins.input", fake_input)


@pytest.fixture
def program(tmp_path):
    def write(src):
        path = tmp_path / "program.par"
        path.write_text(src)
        return str(path)

    return write


def test_run_file(program, capsys):
    assert main.run_file(program("let x = 20; x * 2 + 2")) == 0
    assert capsys.readouterr().out == "42\n"


def test_run_file_with_type(program, capsys):
    assert main.run_file(program("(1, true)"), typecheck=True) == 0
    assert capsys.readouterr().out == "Type: (Int, Bool)\n(1, true)\n"


def test_run_file_reports_errors(program, capsys):
    assert main.run_file(program("1 / 0")) == 1
    assert capsys.readouterr().err == "Error: Division by zero\n"

    assert main.run_file(program("let x = in")) == 1
    assert capsys.readouterr().err.startswith("Error: Parse error: ")

    assert main.run_file(program("if 1 then 2 else 3"), typecheck=True) == 1
    assert capsys.readouterr().err == "Error: Cannot unify types: Int and Bool\n"


def test_run_file_warns_about_non_exhaustive_match(program, capsys):
    src = "type Option a = Some a | None in match Some 1 with | Some x -> x"
    assert main.run_file(program(src)) == 0
    captured = capsys.readouterr()
    assert captured.out == "1\n"
    assert captured.err == "Warning: non-exhaustive match, missing: None\n"

    assert main.run_file(program(src), check_matches=False) == 0
    assert capsys.readouterr().err == ""


def test_check_file(program, capsys):
    assert main.check_file(program("fun x -> x")) == 0
    assert capsys.readouterr().out == "t0 -> t0\n"


def test_main_subcommands(program, capsys):
    path = program("1 + 1")
    assert main.main(["run", path]) == 0
    assert capsys.readouterr().out == "2\n"

    assert main.main(["check", path]) == 0
    assert capsys.readouterr().out == "Int\n"


def test_search_path_from_environment(tmp_path, monkeypatch, capsys):
    (tmp_path / "lib.par").write_text("let answer = 42;")
    script = tmp_path / "main.par"
    script.write_text('load "lib.par" in answer')
    monkeypatch.chdir("/")
    monkeypatch.setenv(main.SEARCH_PATH_VARIABLE, str(tmp_path))
    monkeypatch.setattr(loader, "SEARCH_PATH", [])

    assert main.main(["run", str(script)]) == 0
    assert capsys.readouterr().out == "42\n"


def test_repl_keeps_bindings(monkeypatch, capsys):
    feed(monkeypatch, ["let x = 42;", "x + 1"])
    main.Repl().run()
    assert capsys.readouterr().out == "()\n43\n\nGoodbye!\n"


def test_repl_keeps_type_definitions(monkeypatch, capsys):
    feed(monkeypatch, ["type Option a = Some a | None in let o = Some 1;", "o", "None"])
    main.Repl().run()
    assert capsys.readouterr().out == "()\nSome(1)\nNone\n\nGoodbye!\n"


def test_repl_multiline_input(monkeypatch, capsys):
    feed(monkeypatch, ["let f = fun x ->", "x + 1;", "f 1"])
    main.Repl().run()
    assert capsys.readouterr().out == "()\n2\n\nGoodbye!\n"


def test_repl_continues_after_errors(monkeypatch, capsys):
    feed(monkeypatch, ["1 / 0", "let x =", "", "", "7"])
    main.Repl().run()
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "Error: Division by zero"
    assert lines[1].startswith("Error: Parse error: ")
    assert lines[2:] == ["7", "", "Goodbye!"]
