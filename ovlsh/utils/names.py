# ovlsh/utils/names.py
from __future__ import annotations
import random, string
from typing import Callable, Optional

# 임시 스크립트 이름의 고유 부분을 만드는 callable
NameSource = Callable[[], str]


class RandomNames:
    """랜덤 영문자 토큰 (Executor job_id 방식과 동일)."""

    def __init__(self, length: int = 10, rng: Optional[random.Random] = None):
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.rng = rng or random.Random()

    def __call__(self) -> str:
        return "".join(self.rng.choice(string.ascii_letters) for _ in range(self.length))


class CounterNames:
    """0-padded 증가 카운터. 테스트에서 결정적인 이름이 필요할 때 사용."""

    def __init__(self, start: int = 0, width: int = 6):
        self.next_value = start
        self.width = width

    def __call__(self) -> str:
        value = self.next_value
        self.next_value += 1
        return f"{value:0{self.width}d}"


def default_names() -> NameSource:
    return RandomNames(rng=random.SystemRandom())
