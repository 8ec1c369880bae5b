"""Value types shared by the request pipeline and its callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, NamedTuple, Union


class ResponseType(str, Enum):
    JSON = "json"
    TEXT = "text"
    BLOB = "blob"
    ARRAY_BUFFER = "array_buffer"
    FORM_DATA = "form_data"

    @classmethod
    def _missing_(cls, value: object) -> "ResponseType | None":
        # Accept the camelCase spellings used by browser fetch APIs.
        aliases = {"arraybuffer": cls.ARRAY_BUFFER, "formdata": cls.FORM_DATA}
        if isinstance(value, str):
            return aliases.get(value.replace("_", "").lower())
        return None


class Outcome(NamedTuple):
    """Two-slot result of a logical request.

    ``error is None`` marks success; ``data`` may still be ``None`` in that case
    (for example an empty JSON body). On failure ``data`` is always ``None``.
    """

    data: Any
    error: BaseException | None

    @classmethod
    def success(cls, data: Any) -> "Outcome":
        return cls(data, None)

    @classmethod
    def failure(cls, error: BaseException) -> "Outcome":
        if error is None:
            raise ValueError("failure outcome requires an error")
        return cls(None, error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return ``data`` or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.data


@dataclass(frozen=True)
class ProgressEvent:
    loaded: int
    total: int | None = None

    @property
    def length_computable(self) -> bool:
        return self.total is not None


@dataclass(frozen=True)
class Blob:
    content: bytes
    content_type: str | None = None
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self, encoding: str = "utf-8") -> str:
        return self.content.decode(encoding, errors="replace")


FormValue = Union[str, Blob]


@dataclass
class FormData:
    """Ordered, multi-valued form fields decoded from a response body."""

    fields: list[tuple[str, FormValue]] = field(default_factory=list)

    def append(self, name: str, value: FormValue) -> None:
        self.fields.append((name, value))

    def get(self, name: str, default: FormValue | None = None) -> FormValue | None:
        for key, value in self.fields:
            if key == name:
                return value
        return default

    def get_all(self, name: str) -> list[FormValue]:
        return [value for key, value in self.fields if key == name]

    def keys(self) -> list[str]:
        seen: list[str] = []
        for key, _ in self.fields:
            if key not in seen:
                seen.append(key)
        return seen

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.fields)

    def __iter__(self) -> Iterator[tuple[str, FormValue]]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)
