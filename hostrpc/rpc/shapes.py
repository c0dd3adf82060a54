"""Payload, success and error shapes for endpoints.

Payload shapes are pydantic models generated from a field mapping. Python
code uses snake_case field names; the wire uses camelCase aliases and both
spellings validate. Typed domain failures are ``TaggedError`` subclasses
whose annotated fields are validated with pydantic on construction.
"""

from __future__ import annotations

import typing
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, create_model
from pydantic.alias_generators import to_camel, to_pascal, to_snake

from hostrpc.utils.exceptions import RegistrationError, WireDecodeError

T = TypeVar("T")

PAYLOAD_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    frozen=True,
    strict=True,  # "3" is not an int, "yes" is not a bool
)

_ERROR_MODEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _field_definition(name: str, value: Any) -> tuple[Any, Any]:
    if not isinstance(name, str) or not name.isidentifier() or name.startswith("_"):
        raise RegistrationError(f"Invalid payload field name: {name!r}")
    if isinstance(value, tuple) and len(value) == 2:
        return value
    return (value, ...)


def merge_payload_fields(
    base: Mapping[str, Any] | None,
    fields: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Base fields first; endpoint fields are added and replace base fields of the same name."""
    merged: dict[str, Any] = dict(base or {})
    merged.update(fields or {})
    return merged


def build_payload_model(tag: str, fields: Mapping[str, Any]) -> type[BaseModel]:
    definitions = {name: _field_definition(name, value) for name, value in fields.items()}
    return create_model(
        f"{to_pascal(to_snake(tag))}Payload",
        __config__=PAYLOAD_MODEL_CONFIG,
        **definitions,
    )


class SuccessShape:
    """Validates and encodes an endpoint's success value."""

    __slots__ = ("annotation", "_adapter")

    def __init__(self, annotation: Any = None):
        self.annotation = annotation
        self._adapter: TypeAdapter[Any] = TypeAdapter(type(None) if annotation is None else annotation)

    def encode(self, value: Any) -> Any:
        validated = self._adapter.validate_python(value)
        return self._adapter.dump_python(validated, mode="json", by_alias=True)

    def decode(self, value: Any) -> Any:
        return self._adapter.validate_python(value)

    def json_schema(self) -> dict[str, Any]:
        return self._adapter.json_schema(by_alias=True)

    def __repr__(self) -> str:
        return f"SuccessShape({self.annotation!r})"


class TaggedError(Exception):
    """
    Base class for typed domain failures.

    Subclasses declare their fields as annotations; the discriminant tag
    defaults to the class name:

        class EmptyFieldError(TaggedError):
            field: str

        raise EmptyFieldError(field="name")
    """

    _tag: ClassVar[str] = "TaggedError"

    def __init_subclass__(cls, *, tag: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._tag = tag or cls.__name__
        cls._fields_model = None

    @classmethod
    def fields_model(cls) -> type[BaseModel]:
        """Pydantic model of the declared fields (resolved on first use)."""
        model = cls.__dict__.get("_fields_model")
        if model is None:
            definitions: dict[str, Any] = {}
            for name, annotation in typing.get_type_hints(cls).items():
                if name.startswith("_") or typing.get_origin(annotation) is ClassVar:
                    continue
                definitions[name] = (annotation, cls.__dict__.get(name, ...))
            model = create_model(f"{cls.__name__}Fields", __config__=_ERROR_MODEL_CONFIG, **definitions)
            cls._fields_model = model
        return model

    def __init__(self, *args: Any, **fields: Any) -> None:
        names = list(self.fields_model().model_fields)
        if len(args) > len(names):
            raise TypeError(f"{type(self).__name__} takes at most {len(names)} positional arguments")
        for name, value in zip(names, args):
            if name in fields:
                raise TypeError(f"{type(self).__name__} got multiple values for '{name}'")
            fields[name] = value
        data = self.fields_model()(**fields)
        self._data = data
        for name in names:
            setattr(self, name, getattr(data, name))
        super().__init__(self._describe())

    def _describe(self) -> str:
        message = getattr(self._data, "message", None)
        if isinstance(message, str):
            return message
        rendered = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"{self._tag}({rendered})"

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._data)

    def to_wire(self) -> dict[str, Any]:
        return {"_tag": self._tag, **self._data.model_dump(mode="json", by_alias=True)}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> TaggedError:
        if data.get("_tag") != cls._tag:
            raise WireDecodeError(f"Expected error tag {cls._tag!r}, got {data.get('_tag')!r}")
        payload = {k: v for k, v in data.items() if k != "_tag"}
        try:
            model = cls.fields_model().model_validate(payload)
        except ValidationError as exc:
            raise WireDecodeError(f"Invalid {cls._tag} fields: {exc.error_count()} error(s)") from exc
        return cls(**dict(model))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TaggedError):
            return NotImplemented
        return self._tag == other._tag and self.fields == other.fields

    __hash__ = Exception.__hash__

    def __repr__(self) -> str:
        rendered = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"{type(self).__name__}({rendered})"


@dataclass(frozen=True, slots=True)
class ErrorShape:
    """Union of the typed errors an endpoint may fail with. Empty means it never fails with one."""

    members: tuple[type[TaggedError], ...] = ()

    def __post_init__(self) -> None:
        seen: dict[str, type[TaggedError]] = {}
        for member in self.members:
            if not (isinstance(member, type) and issubclass(member, TaggedError)):
                raise RegistrationError(f"Error shape members must be TaggedError classes, got {member!r}")
            other = seen.get(member._tag)
            if other is not None and other is not member:
                raise RegistrationError(f"Two error classes share the tag {member._tag!r}")
            seen[member._tag] = member

    @classmethod
    def of(cls, error: Any) -> ErrorShape:
        if error is None:
            return cls()
        if isinstance(error, ErrorShape):
            return error
        if isinstance(error, type):
            return cls((error,))
        return cls(tuple(error))

    def union(self, *others: ErrorShape) -> ErrorShape:
        members = list(self.members)
        for other in others:
            members.extend(m for m in other.members if m not in members)
        return ErrorShape(tuple(members))

    def __bool__(self) -> bool:
        return bool(self.members)

    def tags(self) -> list[str]:
        return [m._tag for m in self.members]

    def matches(self, error: BaseException) -> bool:
        return bool(self.members) and isinstance(error, self.members)

    def encode(self, error: TaggedError) -> dict[str, Any]:
        return error.to_wire()

    def decode(self, data: Any) -> TaggedError:
        if not isinstance(data, Mapping):
            raise WireDecodeError("Typed failure must be an object")
        tag = data.get("_tag")
        for member in self.members:
            if member._tag == tag:
                return member.from_wire(data)
        raise WireDecodeError(f"Unknown error tag: {tag!r}")

    def json_schema(self) -> dict[str, Any]:
        variants = []
        for member in self.members:
            schema = member.fields_model().model_json_schema(by_alias=True)
            schema.setdefault("properties", {})["_tag"] = {"const": member._tag}
            schema["required"] = ["_tag", *schema.get("required", [])]
            schema["title"] = member._tag
            variants.append(schema)
        if not variants:
            return {"not": {}}
        return variants[0] if len(variants) == 1 else {"oneOf": variants}


PAGINATION_FIELDS: dict[str, Any] = {
    "cursor": (str | None, None),
    "num_items": int,
}


class PaginationResult(BaseModel, Generic[T]):
    """One page of a cursor-paginated query."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: list[T] = Field(default_factory=list)
    is_done: bool
    continue_cursor: str | None = None
