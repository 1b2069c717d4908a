from typing import (
    Iterator,
    Union,
    Optional,
    List,
    Iterable,
)


StrOrInt = Union[str, int]


class AttributePath(object):
    __slots__ = ("parent", "name")

    def __init__(
        self,
        parent: Optional["AttributePath"],
        key: Optional[StrOrInt],
    ) -> None:
        self.parent = parent
        self.name = key

    @classmethod
    def root_path(cls) -> "AttributePath":
        return AttributePath(None, None)

    def __bool__(self) -> bool:
        return self.name is not None or self.parent is not None

    def path_segments(self) -> Iterable[StrOrInt]:
        segments = list(self._iter_path())
        segments.reverse()
        yield from (s.name for s in segments if s.name is not None)

    @property
    def path(self) -> str:
        parts: List[str] = []
        for k in self.path_segments():
            if isinstance(k, int):
                parts.append(f"[{k}]")
            else:
                if parts:
                    parts.append(".")
                parts.append(k)
        if not parts:
            return "document root"
        return "".join(parts)

    def __str__(self) -> str:
        return self.path

    def __getitem__(self, item: StrOrInt) -> "AttributePath":
        return AttributePath(self, item)

    def _iter_path(self) -> Iterator["AttributePath"]:
        current = self
        yield current
        while True:
            parent = current.parent
            if not parent:
                break
            current = parent
            yield current
