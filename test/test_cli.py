import json
from pathlib import Path

import pytest

from ovlsh.__main__ import main, pair_commands
from ovlsh.utils.sh_writer import FormatError


def test_emit_fixed_path(tmp_path, capsys):
    target = tmp_path / "undo.sh"
    rc = main([
        "--emit", str(target), "--quiet",
        "--cmd", "mount %s %s", "--arg", "/dev/loop0", "--arg", "/mnt/overlay",
        "--cmd", "umount %s", "--arg", "/mnt/overlay",
    ])
    assert rc == 0
    assert capsys.readouterr().out.strip() == str(target)
    assert target.read_text() == "mount /dev/loop0 /mnt/overlay\numount /mnt/overlay\n"


def test_dash_leading_arg(tmp_path, capsys):
    target = tmp_path / "rm.sh"
    rc = main(["--emit", str(target), "--quiet", "--cmd", "rm %s %s", "--arg=-rf", "--arg", "/work"])
    assert rc == 0
    assert target.read_text() == "rm -rf /work\n"


def test_pair_commands_consumes_in_order():
    assert pair_commands(["mount %s %s", "sync", "umount %s"], ["/a", "/b", "/b"]) == [
        ("mount %s %s", "/a", "/b"),
        ("sync",),
        ("umount %s", "/b"),
    ]


def test_pair_commands_leftover_values():
    with pytest.raises(FormatError, match="unused"):
        pair_commands(["sync"], ["/a"])


def test_generate_from_config(tmp_path, capsys):
    cfg = tmp_path / "ovlsh.yaml"
    cfg.write_text(
        "SCRIPT:\n"
        f"  tmp_dir: {tmp_path}\n"
        "  prefix: merge-\n"
        "COMMANDS:\n"
        "  - [\"rm %s\", /upper/a]\n"
        "  - argv: [rmdir, /upper/dir with space]\n"
        "  - sync\n"
    )
    rc = main(["--config", str(cfg), "--header", "--quiet"])
    assert rc == 0
    path = Path(capsys.readouterr().out.strip())
    assert path.parent == tmp_path
    assert path.name.startswith("merge-")
    lines = path.read_text().splitlines()
    assert lines[0] == "#!/usr/bin/env bash"
    assert lines[-3:] == ["rm /upper/a", "rmdir '/upper/dir with space'", "sync"]


def test_quote_flag_keeps_numbers(tmp_path, capsys):
    target = tmp_path / "q.sh"
    rc = main(["--emit", str(target), "--quote", "--quiet",
               "--cmd", "rm %s", "--arg", "/tmp/a b",
               "--cmd", "sleep %s", "--arg", "5"])
    assert rc == 0
    assert target.read_text() == "rm '/tmp/a b'\nsleep 5\n"


def test_mismatched_template_fails(tmp_path, capsys):
    rc = main(["--emit", str(tmp_path / "x.sh"), "--quiet",
               "--cmd", "mount %s %s", "--arg", "/dev/loop0"])
    assert rc == 1
    assert "expects 2 argument(s)" in capsys.readouterr().err


def test_unwritable_destination_fails(tmp_path, capsys):
    rc = main(["--emit", str(tmp_path / "missing" / "x.sh"), "--quiet", "--cmd", "true"])
    assert rc == 1
    assert "cannot open script" in capsys.readouterr().err


@pytest.mark.parametrize("script_section", [
    "  max_attempts: \"10\"\n",
    "  prefix: 2024\n",
    "  header: \"yes\"\n",
])
def test_bad_config_value_exits_1(tmp_path, capsys, script_section):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("SCRIPT:\n" + script_section)
    rc = main(["--config", str(cfg), "--quiet", "--emit", str(tmp_path / "x.sh"), "--cmd", "true"])
    assert rc == 1
    assert "[ovlsh] error:" in capsys.readouterr().err


def test_log_file_records_emit(tmp_path, capsys):
    target = tmp_path / "undo.sh"
    log_file = tmp_path / "calls.jsonl"
    rc = main(["--emit", str(target), "--quiet", "--log-file", str(log_file),
               "--cmd", "umount %s", "--arg", "/mnt/overlay"])
    assert rc == 0
    rec = json.loads(log_file.read_text().splitlines()[0])
    assert rec["task_id"] == "emit"
    assert rec["function"] == "write_script"
    assert rec["result"] == str(target)
    assert rec["error"] is None


def test_log_file_records_failure(tmp_path, capsys):
    log_file = tmp_path / "calls.jsonl"
    rc = main(["--emit", str(tmp_path / "missing" / "x.sh"), "--quiet",
               "--log-file", str(log_file), "--cmd", "true"])
    assert rc == 1
    rec = json.loads(log_file.read_text().splitlines()[0])
    assert "cannot open script" in rec["error"]
    assert rec["traceback"]
