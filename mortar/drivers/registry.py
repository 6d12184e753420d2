"""Driver registry.

Backends are looked up by their configuration ``type`` tag.  Adding a new
backend means registering a :class:`~mortar.drivers.base.Driver` subclass
here; the connection manager finds it without any code change.

Usage::

    from mortar.drivers.registry import DriverFactory

    @DriverFactory.register("oracle")
    class OracleDriver(Driver):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from mortar.drivers.base import Driver
from mortar.errors import ConfigurationError


class DriverFactory:
    """Registry mapping backend type tags to :class:`Driver` classes.

    Example::

        DriverFactory.register_class("pgsql", PostgresDriver)
        driver = DriverFactory.create("pgsql")
    """

    _drivers: ClassVar[dict[str, type[Driver]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Driver]], type[Driver]]:
        """Decorator that registers a driver class under ``name``."""

        def decorator(driver_cls: type[Driver]) -> type[Driver]:
            cls._drivers[name.lower()] = driver_cls
            return driver_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, driver_cls: type[Driver]) -> None:
        """Register a driver class without using the decorator form."""
        cls._drivers[name.lower()] = driver_cls

    @classmethod
    def create(cls, name: str) -> Driver:
        """Instantiate the driver registered for ``name``.

        Args:
            name: The backend type tag (case-insensitive).

        Returns:
            A fresh :class:`Driver` instance.

        Raises:
            ConfigurationError: If ``name`` is empty or not registered.
        """
        if not name:
            raise ConfigurationError("Undefined db type.", option="type")
        driver_cls = cls._drivers.get(name.lower())
        if driver_cls is None:
            registered = sorted(cls._drivers)
            raise ConfigurationError(
                f"Unsupported db type: '{name}'. Registered types: {registered}.",
                option="type",
            )
        return driver_cls()

    @classmethod
    def registered_types(cls) -> list[str]:
        """Return the sorted list of registered backend type tags."""
        return sorted(cls._drivers)
