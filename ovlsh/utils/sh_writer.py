# ovlsh/utils/sh_writer.py
from __future__ import annotations
import datetime, os, re, shlex, tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, TextIO, Tuple, Union

from ovlsh.config import ScriptConfig
from ovlsh.utils.log import log
from ovlsh.utils.names import NameSource, default_names


class ScriptError(OSError):
    """스크립트 파일 생성/기록 실패의 공통 부모."""


class CreationError(ScriptError): ...


class ScriptIOError(ScriptError): ...


class FormatError(ValueError): ...


# printf 변환 지정자 (%% 포함). %(key)s 형태는 매칭되지 않고 렌더링 단계에서 실패한다.
_CONV_RX = re.compile(r"%[#0\- +]*(\*|\d+)?(?:\.(\*|\d+))?[hlL]?([diouxXeEfFgGcrsa%])")


@dataclass
class ShellScript:
    """create_shell_script()가 돌려주는 핸들. 닫는 것은 호출자 책임."""

    path: Path
    stream: TextIO

    def command(self, template: str, *args: Any, quote: bool = False) -> int:
        return command(self, template, *args, quote=quote)

    def close(self) -> None:
        self.stream.close()

    @property
    def closed(self) -> bool:
        return self.stream.closed

    def __enter__(self) -> "ShellScript":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


Handle = Union[ShellScript, TextIO]


# ------------------------------
# 내부 유틸
# ------------------------------
def _stream(handle: Handle) -> TextIO:
    return handle.stream if isinstance(handle, ShellScript) else handle


def _line(x) -> str:
    # x가 토큰 리스트면 join, 문자열이면 그대로
    return shlex.join([str(t) for t in x]) if isinstance(x, (list, tuple)) else str(x)


def _write(stream: TextIO, text: str) -> int:
    # write + flush 까지 해야 디스크 풀 같은 에러가 여기서 드러난다
    try:
        stream.write(text)
        stream.flush()
    except (OSError, ValueError) as e:
        name = getattr(stream, "name", "<stream>")
        raise ScriptIOError(f"failed to write script {name}: {e}") from e
    # 반환값은 바이트 수 (비 ASCII 경로면 문자 수와 다름)
    return len(text.encode(getattr(stream, "encoding", None) or "utf-8"))


def _quotable_args(template: str) -> List[bool]:
    # 인자별로 shlex.quote 대상인지 (%s/%r/%a 만 True, 숫자/`*` 는 그대로)
    kinds: List[bool] = []
    for m in _CONV_RX.finditer(template):
        if m.group(3) == "%":
            continue
        if m.group(1) == "*":
            kinds.append(False)
        if m.group(2) == "*":
            kinds.append(False)
        kinds.append(m.group(3) in "sra")
    return kinds


def count_placeholders(template: str) -> int:
    """template이 소비하는 인자 개수 (%%는 제외, `*` 폭/정밀도는 포함)."""
    return len(_quotable_args(template))


# ------------------------------
# 커맨드 렌더링
# ------------------------------
def render_command(template: str, *args: Any, quote: bool = False) -> str:
    """
    printf 스타일 template에 args를 채워 한 줄짜리 커맨드를 만든다.
    quote=True 이면 문자열 변환(%s, %r, %a) 인자만 shlex.quote 로 감싼다.
    """
    if not template:
        raise FormatError("empty command template")
    quotable = _quotable_args(template)
    if len(quotable) != len(args):
        raise FormatError(
            f"template {template!r} expects {len(quotable)} argument(s), got {len(args)}"
        )
    values: Tuple[Any, ...] = args
    if quote:
        values = tuple(shlex.quote(str(a)) if q else a for a, q in zip(args, quotable))
    try:
        line = template % values
    except (TypeError, ValueError, KeyError) as e:
        raise FormatError(f"cannot render {template!r}: {e}") from e
    if "\n" in line or "\r" in line:
        raise FormatError(f"command must be a single line: {line!r}")
    return line


def command(handle: Handle, template: str, *args: Any, quote: bool = False) -> int:
    """렌더링한 커맨드를 개행과 함께 스크립트 끝에 추가하고 기록한 바이트 수를 반환."""
    line = render_command(template, *args, quote=quote)
    return _write(_stream(handle), line + "\n")


def write_header(handle: Handle, *, set_x: bool = False, generator: str = "ovlsh") -> int:
    header = [
        "#!/usr/bin/env bash",
        "set -euo pipefail",
    ]
    if set_x:
        header.append("set -x")    # 디버그 모드
    header.append(f"# generated by {generator} on {datetime.datetime.now().isoformat(timespec='seconds')}")
    return _write(_stream(handle), "\n".join(header) + "\n")


def make_executable(path: str | Path) -> Path:
    p = Path(path)
    p.chmod(p.stat().st_mode | 0o111)
    return p


# ------------------------------
# 스크립트 생성
# ------------------------------
def _open_unique(cfg: ScriptConfig, names: NameSource) -> Tuple[int, Path]:
    tmp_dir = Path(cfg.tmp_dir or tempfile.gettempdir())
    for _ in range(cfg.max_attempts):
        candidate = tmp_dir / f"{cfg.prefix}{names()}{cfg.suffix}"
        try:
            fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, cfg.permissions)
        except FileExistsError:
            continue
        except OSError as e:
            raise CreationError(f"cannot create script {candidate}: {e}") from e
        try:
            # umask 무시하고 설정된 권한 그대로
            os.fchmod(fd, cfg.permissions)
        except OSError as e:
            os.close(fd)
            raise CreationError(f"cannot chmod script {candidate}: {e}") from e
        return fd, candidate
    raise CreationError(
        f"no unique script name in {tmp_dir} after {cfg.max_attempts} attempts"
    )


def _open_fixed(path: Path, cfg: ScriptConfig) -> int:
    flags = os.O_WRONLY | os.O_CREAT
    flags |= os.O_APPEND if cfg.mode == "append" else os.O_TRUNC
    try:
        return os.open(path, flags, cfg.permissions)
    except OSError as e:
        raise CreationError(f"cannot open script {path}: {e}") from e


def create_shell_script(path: Optional[str | Path] = None,
                        generate: bool = True,
                        *,
                        config: Optional[ScriptConfig] = None,
                        names: Optional[NameSource] = None) -> ShellScript:
    """
    generate=True  : <tmp_dir>/<prefix><unique><suffix> 를 O_EXCL로 새로 만든다 (path 무시).
    generate=False : path를 그대로 연다 (없으면 생성, config.mode에 따라 truncate/append).
    """
    cfg = config or ScriptConfig()
    if generate:
        fd, out = _open_unique(cfg, names or default_names())
    else:
        if path is None or str(path) == "":
            raise CreationError("fixed mode requires a script path")
        out = Path(path)
        fd = _open_fixed(out, cfg)

    try:
        stream = os.fdopen(fd, "w", encoding="utf-8")
    except OSError as e:
        os.close(fd)
        raise CreationError(f"cannot open stream for {out}: {e}") from e

    script = ShellScript(path=out, stream=stream)
    if cfg.header:
        try:
            write_header(script, set_x=cfg.set_x)
        except ScriptIOError:
            try:
                stream.close()
            except OSError as close_err:
                # 남은 버퍼 flush 실패. fd는 이미 닫혔고 원래 에러를 올린다
                log(f"close after failed header on {out}: {close_err}")
            raise

    log(f"{'generated' if generate else 'opened'} script: {out}")
    return script


CommandEntry = Union[str, Sequence[Any], dict]


def write_script(cmds: Iterable[CommandEntry],
                 path: Optional[str | Path] = None,
                 generate: bool = True,
                 *,
                 config: Optional[ScriptConfig] = None,
                 names: Optional[NameSource] = None,
                 quote: bool = False) -> Path:
    """
    cmds 항목:
      "echo done"                               → 그대로 한 줄
      ["mount %s %s", "/dev/loop0", "/mnt"]     → template + args
      {"argv": ["rm", "-rf", "/tmp/x y"]}       → shlex.join
    """
    with create_shell_script(path, generate, config=config, names=names) as script:
        for c in cmds:
            if isinstance(c, dict):
                if "argv" not in c:
                    raise FormatError(f"command mapping needs 'argv': {c!r}")
                line = _line(list(c["argv"]))
                if "\n" in line or "\r" in line:
                    raise FormatError(f"command must be a single line: {line!r}")
                _write(script.stream, line + "\n")
            elif isinstance(c, (list, tuple)):
                if not c:
                    raise FormatError("empty command entry")
                command(script, str(c[0]), *c[1:], quote=quote)
            else:
                line = _line(c)
                if not line or "\n" in line or "\r" in line:
                    raise FormatError(f"command must be a single non-empty line: {line!r}")
                _write(script.stream, line + "\n")
    return script.path
