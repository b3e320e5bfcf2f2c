"""
Thread-local gradient recording mode.

Whether differentiable operations record backward nodes is controlled by a
per-thread flag. The flag is only ever changed through scoped guards that
restore the previous value on every exit path, including exceptions:

- `AutoGradMode(enabled)`: the primitive guard used by the engine
- `no_grad()`: disable recording (context manager or decorator)
- `enable_grad()`: enable recording (context manager or decorator)
- `set_grad_enabled(mode)`: set the flag immediately; restores it when used
  as a context manager

Each thread starts with recording enabled. Worker threads of the backward
engine set their own flag per task from the graph task's mode.
"""

from __future__ import annotations

from contextlib import ContextDecorator
import threading
from typing import List


class _GradState(threading.local):
    def __init__(self) -> None:
        self.enabled = True
        self.saved: List[bool] = []


_STATE = _GradState()


class GradMode:
    """
    Accessors for the calling thread's gradient recording flag.
    """

    @staticmethod
    def is_enabled() -> bool:
        return _STATE.enabled

    @staticmethod
    def set_enabled(enabled: bool) -> None:
        _STATE.enabled = bool(enabled)


class AutoGradMode:
    """
    Scoped guard that sets the grad mode on entry and restores it on exit.

    Parameters
    ----------
    enabled : bool
        Mode to set for the duration of the `with` block.
    """

    def __init__(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        self._prev = True

    def __enter__(self) -> "AutoGradMode":
        self._prev = GradMode.is_enabled()
        GradMode.set_enabled(self.enabled)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        GradMode.set_enabled(self._prev)


class _GradModeGuard(ContextDecorator):
    """
    Base for the public guards.

    Previous flags are pushed onto a per-thread stack rather than stored on
    the guard, so one instance may be entered recursively (a decorated
    function calling itself) or from several threads at once.
    """

    mode: bool

    def __enter__(self) -> None:
        _STATE.saved.append(GradMode.is_enabled())
        GradMode.set_enabled(self.mode)

    def __exit__(self, exc_type, exc, tb) -> None:
        GradMode.set_enabled(_STATE.saved.pop())


class no_grad(_GradModeGuard):
    """
    Disable gradient recording within a block or a decorated function.

    Examples
    --------
    >>> with no_grad():
    ...     y = x * 2          # y.requires_grad is False
    """

    mode = False


class enable_grad(_GradModeGuard):
    """
    Enable gradient recording within a block or a decorated function.
    """

    mode = True


class set_grad_enabled(_GradModeGuard):
    """
    Set gradient recording to `mode`.

    The flag is changed as soon as the object is constructed, so
    `set_grad_enabled(False)` also works as a plain call. Used as a context
    manager, the flag seen before construction is restored on exit. Used as
    a decorator, each call saves and restores the flag of its own thread.
    """

    def __init__(self, mode: bool) -> None:
        self.mode = bool(mode)
        self._prev_at_init = GradMode.is_enabled()
        GradMode.set_enabled(self.mode)

    def _recreate_cm(self) -> "_GradModeGuard":
        guard = _GradModeGuard()
        guard.mode = self.mode
        return guard

    def __enter__(self) -> None:
        _STATE.saved.append(self._prev_at_init)
        GradMode.set_enabled(self.mode)


def is_grad_enabled() -> bool:
    return GradMode.is_enabled()
