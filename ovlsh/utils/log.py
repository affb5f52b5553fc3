import datetime
import json
import sys
import traceback
from functools import wraps

_QUIET = False


def set_quiet(quiet: bool = True) -> None:
    global _QUIET
    _QUIET = quiet


def timestamp() -> str:
    """현재 시각을 'YYYY-MM-DD HH:MM:SS' 형식 문자열로 반환"""
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def log(message: str, *, tag: str = "OVLSH") -> None:
    # stdout은 CLI 결과(스크립트 경로)용이라 로그는 stderr로
    if _QUIET:
        return
    print(f"[{timestamp()}] [{tag}] {message}", file=sys.stderr)


class CallLog:
    """
    감싼 함수의 호출마다 START/END/ERROR 를 찍고, 호출 기록을 모아 JSON lines 로 저장.
    CLI의 --log-file 이 이 기록을 남긴다.
    """

    def __init__(self):
        self.records = []

    def wrap(self, func, *, task_id=None):
        label = f"{task_id} ▶ {func.__name__}" if task_id else func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            started = datetime.datetime.now()
            log(f"▶ {label} START")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (datetime.datetime.now() - started).total_seconds()
                log(f"▶ {label} ERROR (Process Time : {elapsed:.4f}s Log : {e})")
                self._add(task_id, func, started, args, kwargs,
                          error=str(e), tb=traceback.format_exc())
                raise  # 호출한 쪽(CLI)에서 처리
            elapsed = (datetime.datetime.now() - started).total_seconds()
            log(f"▶ {label} END (Process Time : {elapsed:.4f}s)")
            self._add(task_id, func, started, args, kwargs, result=result)
            return result

        return wrapper

    def _add(self, task_id, func, started, args, kwargs, result=None, error=None, tb=None):
        ended = datetime.datetime.now()
        self.records.append({
            "task_id": task_id,
            "function": func.__name__,
            "start_time": started.strftime("%Y-%m-%d %H:%M:%S"),
            "end_time": ended.strftime("%Y-%m-%d %H:%M:%S"),
            "duration_sec": (ended - started).total_seconds(),
            # 인자에 Path, ScriptConfig 가 섞여 있어 문자열로 남긴다
            "args": [str(a) for a in args],
            "kwargs": {k: str(v) for k, v in kwargs.items()},
            "result": None if result is None else str(result),
            "error": error,
            "traceback": tb,
        })

    def dump(self, path, mode: str = "a") -> int:
        with open(path, mode, encoding="utf-8") as f:
            for rec in self.records:
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")
        return len(self.records)
