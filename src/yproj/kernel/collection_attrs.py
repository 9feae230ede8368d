"""Collection attributes with generated add/remove helpers.

    class Project:
        authors = SeqAttr()        # add_author(*items), remove_author(*items)
        metadata = MapAttr()       # set_metadata(key, value), remove_metadata(*keys)

Values live in the instance ``__dict__`` under the attribute name, so an
attribute that was never assigned reads as None and counts as unbound
for AttributeAccessor.
"""

from collections.abc import Mapping
from typing import Any, Optional


def _singular(name: str) -> str:
    if name.endswith("ies"):
        return name[:-3] + "y"
    if name.endswith("s"):
        return name[:-1]
    return name


class _CollectionAttr:
    def __init__(self, doc: Optional[str] = None):
        self.name = ""
        self.__doc__ = doc

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        for helper, func in self._helpers(owner).items():
            if helper not in owner.__dict__:
                func.__name__ = helper
                func.__qualname__ = f"{owner.__qualname__}.{helper}"
                setattr(owner, helper, func)

    def _helpers(self, owner: type) -> dict:
        raise NotImplementedError

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.name)

    def __delete__(self, instance: Any) -> None:
        try:
            del instance.__dict__[self.name]
        except KeyError:
            raise AttributeError(self.name) from None


class SeqAttr(_CollectionAttr):
    """List-valued attribute. ``add_<singular>`` skips items already present when ``unique``."""

    def __init__(self, singular: Optional[str] = None, unique: bool = True, doc: Optional[str] = None):
        super().__init__(doc)
        self.singular = singular
        self.unique = unique

    def __set__(self, instance: Any, value: Any) -> None:
        # other shapes are stored unchanged
        if isinstance(value, (list, tuple)):
            value = list(value)
        instance.__dict__[self.name] = value

    def _helpers(self, owner: type) -> dict:
        attr = self
        singular = self.singular or _singular(self.name)

        def add(self, *items):
            current = self.__dict__.get(attr.name)
            if current is None:
                current = self.__dict__[attr.name] = []
            for item in items:
                if not (attr.unique and item in current):
                    current.append(item)
            return current

        def remove(self, *items):
            current = self.__dict__.get(attr.name) or []
            for item in items:
                while item in current:
                    current.remove(item)
            return current

        return {f"add_{singular}": add, f"remove_{singular}": remove}


class MapAttr(_CollectionAttr):
    """Dict-valued attribute with ``set_<name>(key, value)`` and ``remove_<name>(*keys)``."""

    def __set__(self, instance: Any, value: Any) -> None:
        if isinstance(value, Mapping):
            value = dict(value)
        instance.__dict__[self.name] = value

    def _helpers(self, owner: type) -> dict:
        attr = self

        def set_item(self, key, value):
            current = self.__dict__.get(attr.name)
            if current is None:
                current = self.__dict__[attr.name] = {}
            current[key] = value
            return current

        def remove(self, *keys):
            current = self.__dict__.get(attr.name) or {}
            for key in keys:
                current.pop(key, None)
            return current

        return {f"set_{self.name}": set_item, f"remove_{self.name}": remove}
