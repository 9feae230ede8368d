"""Accessor strategies: how a bridge reads and writes one side of a field.

Each accessor is built once, when a bridge is registered, and exposes
``has``/``get``/``set`` plus the collection steps ``append`` and
``store`` used by sequence and mapping bridges.

- AttributeAccessor: an attribute slot on the instance. ``has`` is True
  only when the attribute is bound on the instance itself.
- MethodAccessor: getter/setter (and optional adder) methods or
  properties, resolved on the class at construction.
- KeyAccessor: a key in a dict-like object.
- CallableAccessor: explicit closures.
"""

import types
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from yproj.errors import UnboundFieldError


class Accessor:
    """Base accessor. Subclasses implement has/get/set."""
    label: str = "?"

    def has(self, instance: Any) -> bool:
        raise NotImplementedError

    def get(self, instance: Any) -> Any:
        raise NotImplementedError

    def set(self, instance: Any, value: Any) -> None:
        raise NotImplementedError

    def append(self, instance: Any, item: Any, unique: bool = False) -> None:
        """Add one element to a list-valued field, creating the list if unset."""
        current = self.get(instance) if self.has(instance) else None
        if current is None:
            self.set(instance, [item])
        elif not (unique and item in current):
            current.append(item)

    def store(self, instance: Any, key: Any, value: Any) -> None:
        """Bind one key/value pair in a dict-valued field, creating the dict if unset."""
        current = self.get(instance) if self.has(instance) else None
        if current is None:
            self.set(instance, {key: value})
        else:
            current[key] = value


@dataclass(frozen=True)
class AttributeAccessor(Accessor):
    """Field stored in an instance attribute."""
    attr: str

    @property
    def label(self) -> str:
        return self.attr

    def has(self, instance: Any) -> bool:
        namespace = getattr(instance, "__dict__", None)
        if namespace is not None and self.attr in namespace:
            return True
        slot = getattr(type(instance), self.attr, None)
        if isinstance(slot, types.MemberDescriptorType):
            try:
                slot.__get__(instance, type(instance))
            except AttributeError:
                return False
            return True
        return False

    def get(self, instance: Any) -> Any:
        if not self.has(instance):
            raise UnboundFieldError(self.attr, instance)
        namespace = getattr(instance, "__dict__", None)
        if namespace is not None and self.attr in namespace:
            return namespace[self.attr]
        return getattr(instance, self.attr)

    def set(self, instance: Any, value: Any) -> None:
        setattr(instance, self.attr, value)


def _resolve_member(owner: type, name: Optional[str], role: str) -> Optional[Callable]:
    if name is None:
        return None
    member = getattr(owner, name, None)
    if member is None:
        raise AttributeError(f"{owner.__name__} has no {role} {name!r}")
    if isinstance(member, property):
        return member.fset if role == "setter" else member.fget
    return member


@dataclass(frozen=True)
class MethodAccessor(Accessor):
    """Field reached through methods (or properties) of ``owner``.

    With ``setter=None`` and a property getter, the property's setter is
    used. ``adder``, when given, is called once per element (sequence) or
    per key/value pair (mapping) in place of ``append``/``store``.
    """
    owner: type
    getter: str
    setter: Optional[str] = None
    adder: Optional[str] = None
    _get: Callable = field(init=False, repr=False, compare=False)
    _set: Optional[Callable] = field(init=False, repr=False, compare=False)
    _add: Optional[Callable] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_get", _resolve_member(self.owner, self.getter, "getter"))
        setter = self.setter
        if setter is None and isinstance(getattr(self.owner, self.getter, None), property):
            setter = self.getter
        object.__setattr__(self, "_set", _resolve_member(self.owner, setter, "setter"))
        object.__setattr__(self, "_add", _resolve_member(self.owner, self.adder, "adder"))

    @property
    def label(self) -> str:
        return self.getter

    def has(self, instance: Any) -> bool:
        return True

    def get(self, instance: Any) -> Any:
        return self._get(instance)

    def set(self, instance: Any, value: Any) -> None:
        if self._set is None:
            raise UnboundFieldError(self.getter, instance,
                                    f"No setter bound for {self.getter!r} on {instance!r}")
        self._set(instance, value)

    def append(self, instance: Any, item: Any, unique: bool = False) -> None:
        if self._add is not None:
            self._add(instance, item)
        else:
            super().append(instance, item, unique)

    def store(self, instance: Any, key: Any, value: Any) -> None:
        if self._add is not None:
            self._add(instance, key, value)
        else:
            super().store(instance, key, value)


@dataclass(frozen=True)
class KeyAccessor(Accessor):
    """Field stored under a key of a dict-like object."""
    key: Any

    @property
    def label(self) -> str:
        return str(self.key)

    def has(self, instance: Mapping) -> bool:
        return self.key in instance

    def get(self, instance: Mapping) -> Any:
        try:
            return instance[self.key]
        except KeyError:
            raise UnboundFieldError(str(self.key), instance) from None

    def set(self, instance: Any, value: Any) -> None:
        instance[self.key] = value


@dataclass(frozen=True)
class CallableAccessor(Accessor):
    """Field reached through explicit callables."""
    getter: Callable[[Any], Any]
    setter: Optional[Callable[[Any, Any], None]] = None
    presence: Optional[Callable[[Any], bool]] = None
    adder: Optional[Callable[..., None]] = None
    name: str = "<callable>"

    @property
    def label(self) -> str:
        return self.name

    def has(self, instance: Any) -> bool:
        return True if self.presence is None else bool(self.presence(instance))

    def get(self, instance: Any) -> Any:
        if not self.has(instance):
            raise UnboundFieldError(self.name, instance)
        return self.getter(instance)

    def set(self, instance: Any, value: Any) -> None:
        if self.setter is None:
            raise UnboundFieldError(self.name, instance,
                                    f"No setter bound for {self.name!r} on {instance!r}")
        self.setter(instance, value)

    def append(self, instance: Any, item: Any, unique: bool = False) -> None:
        if self.adder is not None:
            self.adder(instance, item)
        else:
            super().append(instance, item, unique)

    def store(self, instance: Any, key: Any, value: Any) -> None:
        if self.adder is not None:
            self.adder(instance, key, value)
        else:
            super().store(instance, key, value)
