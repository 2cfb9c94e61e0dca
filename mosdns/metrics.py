"""Thread-safe metric variables and a registry that publishes them as JSON."""

from __future__ import annotations

import json
import logging
import math
import random
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

_logger = logging.getLogger(__name__)


class Var(ABC):
    """A metric that can publish its state."""

    @abstractmethod
    def publish(self) -> Any:
        """Return a built-in value or a dict of built-in values."""


class Registry(Var):
    """A named collection of metric variables."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._vars: dict[str, Var] = {}

    def get(self, name: str) -> Var | None:
        with self._lock:
            return self._vars.get(name)

    def get_or_set(self, name: str, f: Callable[[], Var]) -> Var:
        with self._lock:
            v = self._vars.get(name)
            if v is None:
                v = f()
                self._vars[name] = v
            return v

    def set(self, name: str, v: Var) -> None:
        with self._lock:
            self._vars[name] = v

    def publish(self) -> dict[str, Any]:
        with self._lock:
            return {name: v.publish() for name, v in self._vars.items()}


class Histogram(Var):
    """A histogram backed by a uniform reservoir sample."""

    def __init__(self, reservoir_size: int) -> None:
        if reservoir_size <= 0:
            raise ValueError(f"invalid reservoir size {reservoir_size}")
        self._size = reservoir_size
        self._lock = threading.Lock()
        self._count = 0
        self._values: list[int] = []
        self._rng = random.Random()

    def update(self, v: int) -> None:
        with self._lock:
            self._count += 1
            if len(self._values) < self._size:
                self._values.append(v)
            else:
                r = self._rng.randrange(self._count)
                if r < len(self._values):
                    self._values[r] = v

    def percentiles(self, ps: Iterable[float]) -> list[float]:
        with self._lock:
            values = sorted(self._values)
        ps = list(ps)
        size = len(values)
        if size == 0:
            return [0.0] * len(ps)
        scores = []
        for p in ps:
            pos = p * (size + 1)
            if pos < 1.0:
                scores.append(float(values[0]))
            elif pos >= size:
                scores.append(float(values[-1]))
            else:
                lower = float(values[int(pos) - 1])
                upper = float(values[int(pos)])
                scores.append(lower + (pos - math.floor(pos)) * (upper - lower))
        return scores

    def mean(self) -> float:
        with self._lock:
            if not self._values:
                return 0.0
            return sum(self._values) / len(self._values)

    def publish(self) -> dict[str, Any]:
        p_min, p25, p50, p75, p_max = self.percentiles([0, 0.25, 0.5, 0.75, 1])
        return {
            "min": p_min,
            "p25": p25,
            "p50": p50,
            "p75": p75,
            "max": p_max,
            "avg": int(self.mean()),
        }


class Counter(Var):
    """A counter that can be incremented and decremented."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n

    def count(self) -> int:
        with self._lock:
            return self._count

    def publish(self) -> int:
        return self.count()


class Gauge(Var):
    """Holds the most recently set integer value."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def update(self, v: int) -> None:
        with self._lock:
            self._value = v

    def value(self) -> int:
        with self._lock:
            return self._value

    def publish(self) -> int:
        return self.value()


class GaugeFunc(Var):
    """A gauge whose value is produced by a function on each publish."""

    def __init__(self, f: Callable[[], int]) -> None:
        self._lock = threading.Lock()
        self._f = f

    def publish(self) -> int:
        with self._lock:
            return self._f()


def handle_func(var: Var, logger: logging.Logger | None = None) -> Callable:
    """Return a WSGI application that serves var's published state as JSON."""
    log = logger or _logger

    def app(environ: dict, start_response: Callable) -> list[bytes]:
        try:
            body = json.dumps(var.publish(), indent=2, sort_keys=True).encode()
        except (TypeError, ValueError) as exc:
            log.error("failed to encode json: %s", exc)
            start_response(
                "500 Internal Server Error",
                [("Content-Type", "text/plain; charset=utf-8")],
            )
            return [str(exc).encode()]
        start_response(
            "200 OK",
            [("Content-Type", "application/json"), ("Content-Length", str(len(body)))],
        )
        return [body]

    return app