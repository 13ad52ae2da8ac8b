"""Process-lifetime lazy resource cells."""

from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


class LazyCell(Generic[T]):
    """Holds a resource created on first use and reused afterwards.

    There is no lock: two coroutines racing on first use may both run the
    factory. The first stored result wins and the other one is handed to
    ``dispose`` so it is not leaked.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[T]],
        dispose: Callable[[T], Awaitable[object]] | None = None,
    ):
        self._factory = factory
        self._dispose = dispose
        self._value: T | None = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    async def get(self) -> T:
        if self._value is None:
            value = await self._factory()
            if self._value is None:
                self._value = value
            elif value is not self._value and self._dispose is not None:
                await self._dispose(value)
        return self._value

    def peek(self) -> T | None:
        return self._value

    def reset(self) -> T | None:
        """Drop the cached value and return it so the caller can close it."""
        value, self._value = self._value, None
        return value
