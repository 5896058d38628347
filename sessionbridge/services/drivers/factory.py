"""Resolve the configured automation driver factory."""

import importlib
from typing import Any, Callable

from ...core.exceptions import ConfigurationError
from .base import AutomationDriver

DriverFactory = Callable[..., AutomationDriver]


def load_driver_factory(path: str) -> DriverFactory:
    """
    Import a driver factory from ``"package.module:attribute"``.

    The factory is called as
    ``factory(username=..., phone=..., settings=..., encryption=...)``
    and must return an object implementing ``AutomationDriver``.

    Raises:
        ConfigurationError: If the path is malformed or cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Invalid driver factory path '{path}', expected 'module:attribute'",
            details={"driver_factory": path},
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import driver module '{module_name}': {e}",
            details={"driver_factory": path},
        ) from e

    factory: Any = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError(
            f"Driver factory '{path}' is not callable",
            details={"driver_factory": path},
        )
    return factory
