# ovlsh/config.py
from __future__ import annotations
import yaml
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

MODES = ("truncate", "append")


class ConfigError(ValueError): ...


@dataclass
class ScriptConfig:
    """
    스크립트 생성 설정.

    tmp_dir      : generate 모드의 디렉토리 (None → 호스트 기본 temp 디렉토리)
    prefix/suffix: 임시 파일명 = <prefix><unique><suffix>
    mode         : fixed 모드에서 기존 파일 처리 (truncate | append)
    permissions  : 새로 만드는 파일의 권한 비트
    header       : 열자마자 shebang 헤더 기록 여부
    set_x        : 헤더에 `set -x` 추가
    max_attempts : 임시 이름 충돌 시 재시도 횟수
    """

    tmp_dir: Optional[str] = None
    prefix: str = "overlay-tools-"
    suffix: str = ".sh"
    mode: str = "truncate"
    permissions: int = 0o700
    header: bool = False
    set_x: bool = False
    max_attempts: int = 100

    def __post_init__(self):
        # YAML에서 온 값은 타입이 섞여 들어올 수 있어 먼저 타입부터 확인
        if self.tmp_dir is not None and not isinstance(self.tmp_dir, str):
            raise ConfigError(f"tmp_dir must be a string or null, got {self.tmp_dir!r}")
        for name in ("prefix", "suffix", "mode"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} must be a string, got {getattr(self, name)!r}")
        for name in ("header", "set_x"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true/false, got {getattr(self, name)!r}")
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ConfigError(f"max_attempts must be an integer, got {self.max_attempts!r}")

        if self.mode not in MODES:
            raise ConfigError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.max_attempts <= 0:
            raise ConfigError("max_attempts must be positive")
        for name in ("prefix", "suffix"):
            if "/" in getattr(self, name):
                raise ConfigError(f"{name} must not contain '/'")
        self.permissions = _parse_permissions(self.permissions)


def _parse_permissions(value: Any) -> int:
    # 755 / "755" / "0o755" 모두 8진수로 해석
    if isinstance(value, bool):
        raise ConfigError(f"invalid permissions: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        try:
            return int(text, 8)
        except ValueError:
            raise ConfigError(f"invalid permissions: {value!r}") from None
    raise ConfigError(f"invalid permissions: {value!r}")


def read_document(path: Optional[str | Path] = None,
                  data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if data is not None:
        return data
    if path is not None:
        doc = yaml.safe_load(Path(path).read_text())
        if doc is None:
            return {}
        if not isinstance(doc, dict):
            raise ConfigError(f"{path}: top-level YAML must be a mapping")
        return doc
    return {}


def load_config(path: Optional[str | Path] = None,
                data: Optional[Dict[str, Any]] = None) -> ScriptConfig:
    """YAML 파일(또는 dict)의 SCRIPT 섹션을 ScriptConfig로 변환."""
    doc = read_document(path, data)
    section = doc.get("SCRIPT", {}) or {}
    if not isinstance(section, dict):
        raise ConfigError("SCRIPT section must be a mapping")

    known = {f.name for f in fields(ScriptConfig)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(f"unknown SCRIPT keys: {', '.join(unknown)}")
    # YAML은 755를 10진수로 읽으므로 권한은 문자열만 허용
    perms = section.get("permissions")
    if perms is not None and not isinstance(perms, str):
        raise ConfigError("SCRIPT.permissions must be a quoted octal string, e.g. \"0o755\"")
    return ScriptConfig(**section)
