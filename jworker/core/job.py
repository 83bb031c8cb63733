"""
Job handlers and the registry that resolves them by name.

A handler is a class with a perform(*args) method, usually a Job subclass.
perform may be a plain function (run in a worker thread) or a coroutine
function (awaited on the event loop).

    registry = HandlerRegistry()

    @registry.register
    class Echo(Job, queue="low", retry=3):
        async def perform(self, *args):
            print(self.jid, args)

Job options given as class keywords are merged down the class hierarchy over
DEFAULT_JOB_OPTIONS; the Client copies them onto jobs that do not set the
same keys themselves.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar, overload

from jworker.domain.errors import UnknownHandlerError

DEFAULT_JOB_OPTIONS: dict[str, Any] = {"retry": True, "queue": "default"}


class Job:
    """Base class for job handlers."""

    _job_options: ClassVar[dict[str, Any]] = dict(DEFAULT_JOB_OPTIONS)

    jid: str | None = None

    def __init_subclass__(cls, **options: Any) -> None:
        super().__init_subclass__()
        cls._job_options = {**cls._job_options, **options}

    @classmethod
    def get_options(cls) -> dict[str, Any]:
        return dict(cls._job_options)

    def perform(self, *args: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement perform()")


HandlerFactory = Callable[[], Any]


class HandlerRegistry:
    """Maps the `class` field of a job descriptor to a handler factory."""

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFactory] = {}

    @overload
    def register(self, handler: type, *, name: str | None = None) -> type: ...

    @overload
    def register(
        self, handler: None = None, *, name: str | None = None
    ) -> Callable[[type], type]: ...

    def register(
        self, handler: type | None = None, *, name: str | None = None
    ) -> type | Callable[[type], type]:
        """
        Register `handler` under `name` (default: its class name).

        Works as a plain call, a bare decorator or a decorator with a name.
        """

        def _register(cls: type) -> type:
            self._handlers[name or cls.__name__] = cls
            return cls

        if handler is None:
            return _register
        return _register(handler)

    def resolve(self, name: str) -> HandlerFactory:
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownHandlerError(name) from None

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers
