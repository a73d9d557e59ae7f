"""
Typed property records for nodes and edges.

A property record is an ordered, read-only mapping from string keys to scalar
values (str, int, float) or bools. A small set of core keys is exposed as typed
attributes; every other key is kept in insertion order as an extension.
"""

from collections.abc import Mapping
from typing import Dict, Iterator, Optional, Tuple, Union

from conceptgraph.errors import InvalidProperty


Scalar = Union[str, int, float, bool]


class PropertyRecord(Mapping):
    """
    Ordered scalar-valued property mapping with typed core keys.

    Subclasses set CORE_KEYS; core values must be strings.
    """

    CORE_KEYS: Tuple[str, ...] = ()

    def __init__(self, values: Optional[Mapping] = None, **kwargs):
        merged: Dict[str, Scalar] = {}
        for source in (values or {}), kwargs:
            for key, value in source.items():
                merged[self._check_key(key)] = self._check_value(key, value)
        self._values = merged

    @classmethod
    def coerce(cls, values) -> "PropertyRecord":
        """Return `values` as an instance of this class (None -> empty)."""
        if isinstance(values, cls):
            return values
        if values is None:
            return cls()
        if not isinstance(values, Mapping):
            raise InvalidProperty(f"Properties must be a mapping, got {type(values).__name__}")
        return cls(values)

    def _check_key(self, key) -> str:
        if not isinstance(key, str) or not key:
            raise InvalidProperty(f"Property keys must be non-empty strings, got {key!r}")
        return key

    def _check_value(self, key: str, value) -> Scalar:
        if key in self.CORE_KEYS:
            if not isinstance(value, str):
                raise InvalidProperty(f"Core property {key!r} must be a string, got {value!r}")
            return value
        # bool is a subclass of int, so it is accepted here too
        if not isinstance(value, (str, int, float)):
            raise InvalidProperty(
                f"Property {key!r} must be a str, int, float or bool, got {type(value).__name__}"
            )
        return value

    def __getitem__(self, key: str) -> Scalar:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self):
        return f"{type(self).__name__}({self._values!r})"

    @property
    def extensions(self) -> Dict[str, Scalar]:
        """Non-core properties in insertion order."""
        return {k: v for k, v in self._values.items() if k not in self.CORE_KEYS}

    def string_values(self) -> Iterator[str]:
        """Yield every string-valued property value (bools are not strings)."""
        for value in self._values.values():
            if isinstance(value, str):
                yield value

    def merged(self, updates: Mapping) -> "PropertyRecord":
        """Return a new record with `updates` applied on top of this one."""
        values = dict(self._values)
        values.update(updates)
        return type(self)(values)

    def to_dict(self) -> Dict[str, Scalar]:
        return dict(self._values)


class NodeProperties(PropertyRecord):
    """Node properties: core keys label, description, domain, source."""

    CORE_KEYS = ("label", "description", "domain", "source")

    @property
    def label(self) -> Optional[str]:
        return self._values.get("label")

    @property
    def description(self) -> Optional[str]:
        return self._values.get("description")

    @property
    def domain(self) -> Optional[str]:
        return self._values.get("domain")

    @property
    def source(self) -> Optional[str]:
        return self._values.get("source")


class EdgeProperties(PropertyRecord):
    """Edge properties: core keys rationale, source, rule."""

    CORE_KEYS = ("rationale", "source", "rule")

    @property
    def rationale(self) -> Optional[str]:
        return self._values.get("rationale")

    @property
    def source(self) -> Optional[str]:
        return self._values.get("source")

    @property
    def rule(self) -> Optional[str]:
        return self._values.get("rule")
