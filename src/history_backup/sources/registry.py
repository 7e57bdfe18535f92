from __future__ import annotations

from typing import Callable

from .base import BrowserFamily

FamilyFactory = Callable[[], BrowserFamily]

# Insertion order is the probe order.
_REGISTRY: dict[str, FamilyFactory] = {}


def register_family(name: str) -> Callable[[FamilyFactory], FamilyFactory]:
    def decorator(factory: FamilyFactory) -> FamilyFactory:
        _REGISTRY[name] = factory
        return factory

    return decorator


def registered_families() -> list[BrowserFamily]:
    return [factory() for factory in _REGISTRY.values()]


def registered_family_names() -> list[str]:
    return list(_REGISTRY)
