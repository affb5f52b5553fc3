# ovlsh/__main__.py
from __future__ import annotations
import argparse
import dataclasses
import sys
from typing import Any, List, Optional, Sequence, Tuple

import yaml

from ovlsh.config import ConfigError, load_config, read_document
from ovlsh.utils.log import CallLog, set_quiet
from ovlsh.utils.sh_writer import FormatError, ScriptError, count_placeholders, write_script


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m ovlsh",
        description="build an overlay-tools shell script (generate a temp script or write to a fixed path)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--config", help="YAML with SCRIPT (settings) and COMMANDS (list) sections")
    p.add_argument("--emit", help="Write the script to this path instead of a generated temp file")
    p.add_argument("--cmd", dest="cmds", action="append", metavar="TEMPLATE",
                   help="printf-style command template, repeatable (e.g., --cmd 'mount %%s %%s')")
    p.add_argument("--arg", dest="args", action="append", metavar="VALUE",
                   help="Template argument, repeatable; consumed in order by the --cmd templates. "
                        "Use --arg=VALUE for values starting with '-' (e.g., --arg=-rf)")

    # 헤더/인용
    p.add_argument("--header", action="store_true", help="Prepend bash shebang and strict-mode lines")
    p.add_argument("--set-x", dest="set_x", action="store_true", help="Add `set -x` to the header")
    p.add_argument("--quote", action="store_true", help="shlex-quote %%s/%%r/%%a template arguments")
    p.add_argument("--quiet", action="store_true", help="Suppress log lines on stderr")
    p.add_argument("--log-file", dest="log_file", help="Append JSON-lines call records to this file")
    return p


def pair_commands(templates: Sequence[str], values: Sequence[str]) -> List[Tuple[Any, ...]]:
    """--cmd 템플릿마다 placeholder 개수만큼 --arg 값을 앞에서부터 나눠준다."""
    queue = list(values)
    out: List[Tuple[Any, ...]] = []
    for tpl in templates:
        n = count_placeholders(tpl)
        if n > len(queue):
            raise FormatError(f"template {tpl!r} expects {n} argument(s), got {len(queue)}")
        out.append((tpl, *queue[:n]))
        del queue[:n]
    if queue:
        raise FormatError(f"{len(queue)} unused --arg value(s): {queue!r}")
    return out


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    a = ap.parse_args(argv)
    set_quiet(a.quiet)

    calls = CallLog()
    path = None
    rc = 0
    try:
        doc = read_document(a.config) if a.config else {}
        cfg = load_config(data=doc)
        if a.header or a.set_x:
            cfg = dataclasses.replace(cfg, header=True, set_x=cfg.set_x or a.set_x)

        cmds = doc.get("COMMANDS") or []
        if not isinstance(cmds, list):
            raise ConfigError("COMMANDS section must be a list")
        cmds = list(cmds) + pair_commands(a.cmds or [], a.args or [])

        emit = calls.wrap(write_script, task_id="emit")
        path = emit(cmds, a.emit, a.emit is None, config=cfg, quote=a.quote)
    except (ScriptError, ConfigError, FormatError, yaml.YAMLError, OSError) as e:
        print(f"[ovlsh] error: {e}", file=sys.stderr)
        rc = 1

    if a.log_file:
        try:
            calls.dump(a.log_file)
        except OSError as e:
            print(f"[ovlsh] error: cannot write log file {a.log_file}: {e}", file=sys.stderr)
            rc = 1

    if rc == 0:
        # stdout에는 경로만 (외부 실행기가 그대로 받아 쓰도록)
        print(path)
    return rc


if __name__ == "__main__":
    sys.exit(main())
