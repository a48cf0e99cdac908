"""Read-only lookup over the permission registry."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from teamchat_rbac.core.rbac.errors import PermissionNotFoundError
from teamchat_rbac.core.rbac.registry import PERMISSIONS
from teamchat_rbac.core.rbac.types import PermissionCategory, PermissionDef


class PermissionCatalog:
    """Closed set of permission definitions, populated once and never mutated."""

    def __init__(self, definitions: Iterable[PermissionDef] = PERMISSIONS) -> None:
        ordered = tuple(definitions)
        self._definitions: dict[str, PermissionDef] = {}
        for definition in ordered:
            if definition.key in self._definitions:
                raise ValueError(f"Duplicate permission key '{definition.key}'")
            self._definitions[definition.key] = definition
        self._ordered = ordered
        self._keys = frozenset(self._definitions)
        self._order = {definition.key: index for index, definition in enumerate(ordered)}

    def get(self, key: str) -> PermissionDef:
        try:
            return self._definitions[key]
        except KeyError:
            raise PermissionNotFoundError(key) from None

    def is_dangerous(self, key: str) -> bool:
        return self.get(key).is_dangerous

    def requires_admin(self, key: str) -> bool:
        return self.get(key).requires_admin

    def list_by_category(self, category: PermissionCategory | str) -> tuple[PermissionDef, ...]:
        category = PermissionCategory(category)
        return tuple(defn for defn in self._ordered if defn.category is category)

    def categories(self) -> tuple[PermissionCategory, ...]:
        seen: dict[PermissionCategory, None] = {}
        for definition in self._ordered:
            seen.setdefault(definition.category, None)
        return tuple(seen)

    def keys(self) -> frozenset[str]:
        return self._keys

    def dangerous_keys(self) -> frozenset[str]:
        return frozenset(defn.key for defn in self._ordered if defn.is_dangerous)

    def unknown_keys(self, keys: Iterable[str]) -> tuple[str, ...]:
        """Return the keys not present in the catalog, de-duplicated, in input order."""

        missing: dict[str, None] = {}
        for key in keys:
            if key not in self._keys:
                missing.setdefault(key, None)
        return tuple(missing)

    def sort_keys(self, keys: Iterable[str]) -> tuple[str, ...]:
        """Order known keys by registry position; unknown keys sort last, alphabetically."""

        fallback = len(self._ordered)
        return tuple(sorted(set(keys), key=lambda key: (self._order.get(key, fallback), key)))

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[PermissionDef]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)


__all__ = ["PermissionCatalog"]
