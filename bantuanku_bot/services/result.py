from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value of a facade call, or the reason it was refused.

    `message` is donor-facing Indonesian text the bot can send as-is;
    `code` is a stable key for logs and tests.
    """

    value: Optional[T] = None
    code: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def refused(cls, code: str, message: str) -> "Result[T]":
        return cls(code=code, message=message)

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if not self.ok:
            return Result(code=self.code, message=self.message)
        return Result(value=fn(self.value))

    def reply(self, render: Callable[[T], str]) -> str:
        """Rendered value on success, the refusal message otherwise."""
        return render(self.value) if self.ok else self.message

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f"{self.code}: {self.message}")
        return self.value
