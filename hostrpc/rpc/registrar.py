"""Module registrar: turns unbuilt endpoints into an RPC module."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from loguru import logger

from hostrpc.rpc.descriptor import EndpointDescriptor, EndpointGroup, EndpointKind
from hostrpc.rpc.factory import HostFunction, UnbuiltEndpoint
from hostrpc.utils.exceptions import DuplicateTagError, RegistrationError


@dataclass(frozen=True, slots=True)
class HostFunctionSpec:
    """Everything a host needs to register one function."""

    path: str
    tag: str
    kind: EndpointKind
    internal: bool
    args_validator: dict[str, Any]
    returns_validator: dict[str, Any]
    handler: HostFunction


class RpcModule:
    """Built endpoints of one deployment unit. Read-only after construction."""

    __slots__ = ("name", "endpoints", "handlers", "group")

    def __init__(
        self,
        endpoints: Mapping[str, EndpointDescriptor],
        handlers: Mapping[str, HostFunction],
        *,
        name: str | None = None,
    ):
        self.name = name
        self.endpoints: Mapping[str, EndpointDescriptor] = MappingProxyType(dict(endpoints))
        self.handlers: Mapping[str, HostFunction] = MappingProxyType(dict(handlers))
        self.group = EndpointGroup(self.endpoints.values())

    def tags(self) -> list[str]:
        return list(self.endpoints)

    def public_tags(self) -> list[str]:
        return [tag for tag, d in self.endpoints.items() if not d.internal]

    def descriptor(self, tag: str) -> EndpointDescriptor:
        try:
            return self.endpoints[tag]
        except KeyError:
            raise KeyError(f"Unknown endpoint tag: {tag}") from None

    def function_path(self, tag: str) -> str:
        """Host path of an endpoint: ``"<module>:<tag>"`` for named modules, the bare tag otherwise."""
        self.descriptor(tag)
        return f"{self.name}:{tag}" if self.name else tag

    def host_functions(self) -> list[HostFunctionSpec]:
        specs = []
        for tag, descriptor in self.endpoints.items():
            specs.append(
                HostFunctionSpec(
                    path=self.function_path(tag),
                    tag=tag,
                    kind=descriptor.kind,
                    internal=descriptor.internal,
                    args_validator=descriptor.args_schema(),
                    returns_validator=descriptor.exit_schema(),
                    handler=self.handlers[tag],
                )
            )
        return specs

    def __repr__(self) -> str:
        return f"RpcModule(name={self.name!r}, tags={self.tags()!r})"


def make_rpc_module(
    endpoints: Mapping[str, UnbuiltEndpoint] | Iterable[tuple[str, UnbuiltEndpoint]],
    *,
    name: str | None = None,
) -> RpcModule:
    """Build every unbuilt endpoint under its key.

    Raises RegistrationError for anything that is not an unbuilt endpoint and
    DuplicateTagError when a tag appears twice.
    """
    items = endpoints.items() if isinstance(endpoints, Mapping) else endpoints
    descriptors: dict[str, EndpointDescriptor] = {}
    handlers: dict[str, HostFunction] = {}
    for tag, unbuilt in items:
        if not isinstance(unbuilt, UnbuiltEndpoint):
            raise RegistrationError(f"Expected unbuilt endpoint for key '{tag}', got {type(unbuilt).__name__}", tag=tag)
        if tag in descriptors:
            raise DuplicateTagError(tag)
        built = unbuilt.build(tag)
        descriptors[tag] = built.descriptor
        handlers[tag] = built.host_function
    module = RpcModule(descriptors, handlers, name=name)
    logger.debug("Built RPC module {} with {} endpoints", name or "<unnamed>", len(descriptors))
    return module


def merge_modules(*modules: RpcModule, name: str | None = None) -> RpcModule:
    """Combine built modules into one; tags must stay unique."""
    descriptors: dict[str, EndpointDescriptor] = {}
    handlers: dict[str, HostFunction] = {}
    for module in modules:
        for tag, descriptor in module.endpoints.items():
            if tag in descriptors:
                raise DuplicateTagError(tag)
            descriptors[tag] = descriptor
            handlers[tag] = module.handlers[tag]
    return RpcModule(descriptors, handlers, name=name)
