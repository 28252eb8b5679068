"""
TreePulse — Host Adapter Contract

The host framework owns the real container tree. It hands the monitor a
list of root references; each reference carries its own metadata and the
nested child references. The monitor never reaches past this contract.

Refs may be HostNodeRef instances or plain dicts of the same shape.
"""
import re
from typing import Any, Callable, Optional, Protocol, Sequence, Union, runtime_checkable

from pydantic import BaseModel, Field

from .models import UpdateStrategy


UNKNOWN_SELECTOR = "<unknown>"
UNKNOWN_NAME = "Unknown"


class HostNodeRef(BaseModel):
    """
    One container as reported by the host.

    `children` holds raw child refs. They are validated one level at a time
    by the registry walk, so tree depth is not bounded by validation depth.
    """
    id: Optional[str] = None
    name: Optional[str] = None
    selector: Optional[str] = None
    update_strategy: Optional[UpdateStrategy] = None
    type_name: Optional[str] = None
    children: list[Any] = Field(default_factory=list)


@runtime_checkable
class HostAdapter(Protocol):
    def roots(self) -> Sequence[Union[HostNodeRef, dict[str, Any]]]:
        ...


RootSupplier = Union[HostAdapter, Callable[[], Sequence[Any]]]


class StaticHostAdapter:
    """Adapter over a fixed root list, swapped wholesale by the caller."""

    def __init__(self, roots: Optional[Sequence[Any]] = None):
        self._roots: list[Any] = list(roots or [])

    def roots(self) -> list[Any]:
        return list(self._roots)

    def set_roots(self, roots: Sequence[Any]) -> None:
        self._roots = list(roots)


def camel_to_kebab(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"-\1", name).lower()


def display_name(ref: HostNodeRef) -> str:
    return ref.name or ref.type_name or UNKNOWN_NAME


def display_selector(ref: HostNodeRef) -> str:
    """Host selector, else the kebab-cased type name in angle brackets."""
    if ref.selector:
        return ref.selector
    base = ref.type_name or ref.name
    if not base:
        return UNKNOWN_SELECTOR
    return f"<{camel_to_kebab(base)}>"


def fetch_roots(supplier: Optional[RootSupplier]) -> Any:
    """Ask the host for its current roots; whatever it returns is unchecked."""
    if supplier is None:
        return []
    if isinstance(supplier, HostAdapter):
        return supplier.roots()
    return supplier()
