from __future__ import annotations

import os
import stat
from io import StringIO

import pytest

from toolscript.cli.listing import format_tool_listing, sorted_tools
from toolscript.cli.output import print_output
from toolscript.engine import list_builtin_tools
from toolscript.program import parse_program
from toolscript.shared import EMPTY_PROGRAM


def test_echoes_input_then_result_with_one_newline() -> None:
    out, err = StringIO(), StringIO()
    print_output("the question", "the answer", quiet=False, stdout=out, stderr=err)

    assert err.getvalue() == "\nINPUT:\n\nthe question\n\nOUTPUT:\n\n"
    assert out.getvalue() == "the answer\n"
    combined = err.getvalue() + out.getvalue()
    assert combined.index("the question") < combined.index("the answer")


def test_result_with_newline_is_not_doubled() -> None:
    out, err = StringIO(), StringIO()
    print_output("", "done\n", quiet=False, stdout=out, stderr=err)
    assert out.getvalue() == "done\n"
    assert "INPUT:" not in err.getvalue()
    assert "OUTPUT:" in err.getvalue()


def test_quiet_prints_only_result() -> None:
    out, err = StringIO(), StringIO()
    print_output("in", "result", quiet=True, stdout=out, stderr=err)
    assert out.getvalue() == "result\n"
    assert err.getvalue() == ""


def test_output_file_is_truncated_with_fixed_mode(tmp_path) -> None:
    target = tmp_path / "result.txt"
    target.write_text("old content that is longer", encoding="utf-8")
    out, err = StringIO(), StringIO()

    print_output("in", "new", output_file=str(target), stdout=out, stderr=err)

    assert target.read_text(encoding="utf-8") == "new"
    assert out.getvalue() == ""
    assert err.getvalue() == ""


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_new_output_file_mode(tmp_path) -> None:
    target = tmp_path / "fresh.txt"
    old = os.umask(0)
    try:
        print_output("", "x", output_file=str(target))
    finally:
        os.umask(old)
    assert stat.S_IMODE(target.stat().st_mode) == 0o644


def test_output_file_error_propagates(tmp_path) -> None:
    with pytest.raises(OSError):
        print_output("", "x", output_file=str(tmp_path / "no-such-dir" / "f.txt"))


LISTING_DOC = """
tools:
  - description: Unnamed entry
    instructions: SECRET ENTRY INSTRUCTIONS
    tools: [zeta, alpha]
  - name: zeta
    description: Last by name
    instructions: SECRET ZETA
  - name: alpha
    description: First by name
    instructions: SECRET ALPHA
"""


def test_tool_listing_sorted_named_and_without_instructions() -> None:
    program = parse_program(LISTING_DOC, "", "scripts/main.yaml")
    text = format_tool_listing(program, program.tools())

    entries = text.split("\n---\n")
    assert [e.splitlines()[0] for e in entries] == [
        "Name: main.yaml",
        "Name: alpha",
        "Name: zeta",
    ]
    assert "SECRET" not in text


def test_sort_is_stable_for_equal_names() -> None:
    doc = (
        "tools:\n"
        "  - name: b\n    description: first b\n    instructions: x\n"
        "  - name: a\n    instructions: y\n"
    )
    program = parse_program(doc, "", "p.yaml")
    dup = list(program.tools()) + [program.tools()[0]]
    assert [t.description for t in sorted_tools(dup) if t.name == "b"] == [
        "first b",
        "first b",
    ]
    assert sorted_tools(dup)[0].name == "a"


def test_empty_program_lists_builtins() -> None:
    text = format_tool_listing(EMPTY_PROGRAM, list_builtin_tools())
    assert "Name: sys.echo" in text
    assert "Name: sys.exec" in text
