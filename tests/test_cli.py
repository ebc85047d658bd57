"""
Tests for the sigcontract command line.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

from sigcontract.cli import EXIT_ERROR, EXIT_OK, main

REPO_ROOT = Path(__file__).resolve().parent.parent


def _record(qualname, args, ret, module="calc"):
    return json.dumps({
        "method": {"module": module, "qualname": qualname},
        "args": [{"name": f"a{i}", "type": t} for i, t in enumerate(args)],
        "return": ret,
    })


def _write_trace(tmp_path, lines):
    path = tmp_path / "trace.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return path


def test_cli_exists():
    """The package runs as a module and prints its help."""
    env = dict(os.environ)
    env["PYTHONPATH"] = str(REPO_ROOT) + os.pathsep + env.get("PYTHONPATH", "")
    result = subprocess.run(
        [sys.executable, "-m", "sigcontract", "--help"],
        capture_output=True,
        text=True,
        env=env,
    )
    assert result.returncode == 0
    assert "sigcontract" in result.stdout
    assert "build" in result.stdout


def test_build_handles_nonexistent_file(tmp_path, capsys):
    code = main(["build", str(tmp_path / "missing.jsonl"), "--config", str(tmp_path)])

    assert code == EXIT_ERROR
    assert "not found" in capsys.readouterr().err.lower()


def test_build_rejects_directory(tmp_path, capsys):
    code = main(["build", str(tmp_path), "--config", str(tmp_path)])

    assert code == EXIT_ERROR
    assert "not a file" in capsys.readouterr().err.lower()


def test_build_text_report(tmp_path, capsys):
    trace = _write_trace(tmp_path, [
        _record("add", ["int", "int"], "int"),
        _record("add", ["str", "str"], "str"),
        _record("neg", ["int"], "int"),
        "not a record",
    ])

    code = main(["build", str(trace), "--config", str(tmp_path)])

    out = capsys.readouterr().out
    assert code == EXIT_OK
    assert "calc.add  (calls: 2" in out
    assert "  (a0: int, a1: int) -> int" in out
    assert "  (a0: str, a1: str) -> str" in out
    assert "calc.neg  (calls: 1" in out
    assert "Contracts: 2" in out


def test_build_json_report(tmp_path, capsys):
    trace = _write_trace(tmp_path, [
        _record("add", ["int", "int"], "int"),
        _record("add", ["str", "str"], "str"),
    ])

    code = main(["build", str(trace), "--json", "--config", str(tmp_path)])

    document = json.loads(capsys.readouterr().out)
    assert code == EXIT_OK
    assert list(document) == ["calc.add"]
    contract = document["calc.add"]["contract"]
    assert contract["arity"] == 2
    assert contract["counter"] == 2
    assert any("ref" in t for node in contract["nodes"] for t in node["transitions"])
    assert [s["return"] for s in document["calc.add"]["signatures"]] == ["int", "str"]


def test_no_compress_keeps_typed_transitions(tmp_path, capsys):
    trace = _write_trace(tmp_path, [_record("neg", ["int"], "int")])

    main(["build", str(trace), "--json", "--no-compress", "--config", str(tmp_path)])

    contract = json.loads(capsys.readouterr().out)["calc.neg"]["contract"]
    assert all("type" in t for node in contract["nodes"] for t in node["transitions"])


def test_min_calls_from_config(tmp_path, capsys):
    (tmp_path / ".sigcontract.yml").write_text("build:\n  min-calls: 2\n")
    trace = _write_trace(tmp_path, [
        _record("add", ["int", "int"], "int"),
        _record("add", ["int", "int"], "int"),
        _record("neg", ["int"], "int"),
    ])

    main(["build", str(trace), "--config", str(tmp_path)])

    out = capsys.readouterr().out
    assert "calc.add" in out
    assert "calc.neg" not in out
    assert "Contracts: 1" in out


def test_bad_config_is_an_error(tmp_path, capsys):
    (tmp_path / ".sigcontract.yml").write_text("output:\n  format: xml\n")
    trace = _write_trace(tmp_path, [_record("neg", ["int"], "int")])

    assert main(["build", str(trace), "--config", str(tmp_path)]) == EXIT_ERROR
    assert "Error" in capsys.readouterr().err


def test_trace_script(tmp_path, capsys):
    script = tmp_path / "script.py"
    script.write_text(
        "import sys\n"
        "def twice(x):\n"
        "    return x + x\n"
        "twice(int(sys.argv[1]))\n"
        "twice('ab')\n"
    )
    (tmp_path / ".sigcontract.yml").write_text(f"trace:\n  include: ['{script.name}']\n")
    output = tmp_path / "calls.jsonl"

    code = main([
        "trace", "--output", str(output), "--config", str(tmp_path),
        str(script), "21",
    ])

    out = capsys.readouterr().out
    assert code == EXIT_OK
    assert "__main__.twice  (calls: 2" in out
    assert "(x: int) -> int" in out
    assert "(x: str) -> str" in out
    assert len(output.read_text().splitlines()) == 2


def test_trace_missing_script(tmp_path, capsys):
    assert main(["trace", "--config", str(tmp_path), str(tmp_path / "nope.py")]) == EXIT_ERROR
    assert "not found" in capsys.readouterr().err.lower()


def test_init_writes_config(tmp_path, capsys):
    assert main(["init", str(tmp_path)]) == EXIT_OK
    assert (tmp_path / ".sigcontract.yml").read_text().startswith("# .sigcontract.yml")

    assert main(["init", str(tmp_path)]) == EXIT_ERROR
    assert main(["init", str(tmp_path), "--overwrite"]) == EXIT_OK


def test_no_command_prints_help(capsys):
    assert main([]) == EXIT_OK
    assert "usage" in capsys.readouterr().out.lower()


def test_trace_script_that_raises(tmp_path, capsys):
    script = tmp_path / "boom.py"
    script.write_text("raise RuntimeError('boom')\n")

    assert main(["trace", "--config", str(tmp_path), str(script)]) == EXIT_ERROR
    assert "RuntimeError: boom" in capsys.readouterr().err
