"""Total, immutable Permission Set.

A PermissionSet maps EVERY Capability to an explicit bool. A capability is
never "absent": denial is `False`, so "denied" and "unset" cannot be confused.

Construction validates the closed vocabulary:
  - a missing capability            → ValidationError
  - an unrecognized key             → ValidationError
  - a non-bool value (0/1, "true")  → ValidationError
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from changeflow.auth.capabilities import Capability, parse_capability
from changeflow.middleware.exceptions import ValidationError

# Canonical order: enum definition order. Values are stored positionally.
_ORDER: tuple[Capability, ...] = tuple(Capability)
_INDEX: dict[Capability, int] = {c: i for i, c in enumerate(_ORDER)}


def _normalize(mapping: Any, *, require_total: bool) -> dict[Capability, bool]:
    if not isinstance(mapping, Mapping):
        raise ValidationError(
            f"Permission set must be a mapping, got {type(mapping).__name__}"
        )

    values: dict[Capability, bool] = {}
    unknown: list[str] = []
    bad_values: list[str] = []

    for key, value in mapping.items():
        if isinstance(key, Capability):
            capability = key
        else:
            try:
                capability = Capability(key)
            except ValueError:
                unknown.append(str(key))
                continue
        if not isinstance(value, bool):
            bad_values.append(capability.value)
            continue
        values[capability] = value

    missing = [c.value for c in _ORDER if c not in values] if require_total else []
    # A capability with a non-bool value is reported once, as invalid
    missing = [m for m in missing if m not in bad_values]

    if unknown or missing or bad_values:
        parts = []
        if missing:
            parts.append(f"{len(missing)} missing")
        if unknown:
            parts.append(f"unrecognized: {', '.join(sorted(unknown))}")
        if bad_values:
            parts.append(f"non-boolean: {', '.join(sorted(bad_values))}")
        raise ValidationError(
            f"Invalid permission set ({'; '.join(parts)})",
            missing=missing + bad_values,
            unknown=unknown,
        )
    return values


class PermissionSet(Mapping):
    """Immutable total mapping Capability → bool with structural equality."""

    __slots__ = ("_values",)

    def __init__(self, mapping: Mapping[Capability | str, bool]):
        values = _normalize(mapping, require_total=True)
        object.__setattr__(self, "_values", tuple(values[c] for c in _ORDER))

    # ── Factories ────────────────────────────────────────────

    @classmethod
    def _from_values(cls, values: tuple[bool, ...]) -> PermissionSet:
        inst = cls.__new__(cls)
        object.__setattr__(inst, "_values", values)
        return inst

    @classmethod
    def none(cls) -> PermissionSet:
        """Every capability denied."""
        return cls._from_values((False,) * len(_ORDER))

    @classmethod
    def all(cls) -> PermissionSet:
        """Every capability granted."""
        return cls._from_values((True,) * len(_ORDER))

    @classmethod
    def from_granted(cls, granted: Iterable[Capability | str]) -> PermissionSet:
        """Build a set where only the listed capabilities are granted."""
        return cls.none().with_override({c: True for c in granted})

    # ── Lookup ───────────────────────────────────────────────

    def get(self, capability: Capability | str) -> bool:  # type: ignore[override]
        """Value of `capability`.

        A set is total, so there is no `default`: unknown names raise
        ValidationError instead of falling back.
        """
        return self._values[_INDEX[parse_capability(capability)]]

    def __getitem__(self, capability: Capability | str) -> bool:
        if not isinstance(capability, Capability):
            try:
                capability = Capability(capability)
            except ValueError:
                raise KeyError(capability) from None
        return self._values[_INDEX[capability]]

    def __iter__(self) -> Iterator[Capability]:
        return iter(_ORDER)

    def __len__(self) -> int:
        return len(_ORDER)

    # ── Derivation (all side-effect free) ────────────────────

    def with_override(self, partial: Mapping[Capability | str, bool]) -> PermissionSet:
        """Return a copy with `partial` applied on top; the copy is re-validated."""
        changes = _normalize(partial, require_total=False)
        values = list(self._values)
        for capability, value in changes.items():
            values[_INDEX[capability]] = value
        return PermissionSet(dict(zip(_ORDER, values)))

    def merge_any(self, other: PermissionSet) -> PermissionSet:
        """Capability-wise OR. Commutative and associative; `none()` is the identity."""
        if not isinstance(other, PermissionSet):
            raise TypeError(f"Cannot merge PermissionSet with {type(other).__name__}")
        return PermissionSet._from_values(
            tuple(a or b for a, b in zip(self._values, other._values))
        )

    # ── Views ────────────────────────────────────────────────

    def granted(self) -> list[str]:
        """Sorted names of granted capabilities (stable for responses and claims)."""
        return sorted(c.value for c, v in zip(_ORDER, self._values) if v)

    def to_dict(self) -> dict[str, bool]:
        return {c.value: v for c, v in zip(_ORDER, self._values)}

    # ── Value semantics ──────────────────────────────────────

    def __setattr__(self, name, value):
        raise AttributeError("PermissionSet is immutable")

    def __delattr__(self, name):
        raise AttributeError("PermissionSet is immutable")

    def __eq__(self, other):
        if isinstance(other, PermissionSet):
            return self._values == other._values
        return NotImplemented

    def __hash__(self):
        return hash(self._values)

    def __repr__(self) -> str:
        granted = self.granted()
        return f"PermissionSet(granted={granted!r})"

    def __reduce__(self):
        return (PermissionSet, (self.to_dict(),))
