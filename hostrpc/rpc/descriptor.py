"""Endpoint descriptors and the combined endpoint group."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from hostrpc.rpc.outcome import exit_json_schema
from hostrpc.rpc.shapes import ErrorShape, SuccessShape
from hostrpc.utils.exceptions import DuplicateTagError


class EndpointKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"
    ACTION = "action"


def _frozen(annotations: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(annotations or {}))


@dataclass(frozen=True, slots=True, eq=False)
class EndpointDescriptor:
    """Immutable description of one remote procedure."""

    tag: str
    kind: EndpointKind
    payload_model: type[BaseModel]
    success: SuccessShape
    error: ErrorShape
    annotations: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))
    internal: bool = False
    middlewares: tuple[str, ...] = ()

    @property
    def kind_name(self) -> str:
        """Host-facing kind name, e.g. ``"query"`` or ``"internalMutation"``."""
        if not self.internal:
            return self.kind.value
        return "internal" + self.kind.value.capitalize()

    def annotate(self, key: str, value: Any) -> EndpointDescriptor:
        return replace(self, annotations=_frozen({**self.annotations, key: value}))

    def annotate_many(self, annotations: Mapping[str, Any]) -> EndpointDescriptor:
        return replace(self, annotations=_frozen({**self.annotations, **annotations}))

    def with_middleware(self, *tags: str) -> EndpointDescriptor:
        added = tuple(t for t in dict.fromkeys(tags) if t not in self.middlewares)
        return replace(self, middlewares=self.middlewares + added)

    def with_tag(self, tag: str) -> EndpointDescriptor:
        return replace(self, tag=tag)

    def args_schema(self) -> dict[str, Any]:
        return self.payload_model.model_json_schema(by_alias=True)

    def exit_schema(self) -> dict[str, Any]:
        return exit_json_schema(self.success, self.error)

    def __repr__(self) -> str:
        return f"EndpointDescriptor(tag={self.tag!r}, kind={self.kind_name!r})"


class EndpointGroup:
    """Read-only set of descriptors keyed by tag, used for discovery."""

    __slots__ = ("_descriptors",)

    def __init__(self, descriptors: Iterable[EndpointDescriptor] = ()):
        table: dict[str, EndpointDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.tag in table:
                raise DuplicateTagError(descriptor.tag)
            table[descriptor.tag] = descriptor
        self._descriptors: Mapping[str, EndpointDescriptor] = MappingProxyType(table)

    def tags(self) -> list[str]:
        return list(self._descriptors)

    def get(self, tag: str) -> EndpointDescriptor | None:
        return self._descriptors.get(tag)

    def kind_of(self, tag: str) -> EndpointKind:
        descriptor = self._descriptors.get(tag)
        if descriptor is None:
            raise KeyError(tag)
        return descriptor.kind

    def merge(self, *others: EndpointGroup) -> EndpointGroup:
        descriptors = list(self)
        for other in others:
            descriptors.extend(other)
        return EndpointGroup(descriptors)

    def prefix(self, prefix: str) -> EndpointGroup:
        return EndpointGroup(d.with_tag(f"{prefix}{d.tag}") for d in self)

    def annotate(self, key: str, value: Any) -> EndpointGroup:
        return EndpointGroup(d.annotate(key, value) for d in self)

    def annotate_context(self, annotations: Mapping[str, Any]) -> EndpointGroup:
        return EndpointGroup(d.annotate_many(annotations) for d in self)

    def middleware(self, *entries: Any) -> EndpointGroup:
        """Record middleware on every descriptor. Accepts tags, declarations or entries.

        Discovery metadata only; the call pipeline is fixed by the factory.
        """
        tags = [entry if isinstance(entry, str) else entry.tag for entry in entries]
        return EndpointGroup(d.with_middleware(*tags) for d in self)

    def __contains__(self, tag: object) -> bool:
        return tag in self._descriptors

    def __iter__(self) -> Iterator[EndpointDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __repr__(self) -> str:
        return f"EndpointGroup({self.tags()!r})"
