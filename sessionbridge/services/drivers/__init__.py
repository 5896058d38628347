"""Automation driver boundary."""

from .base import AutomationDriver, LoginResult, OperationResult
from .browser import BrowserDriver
from .factory import DriverFactory, load_driver_factory

__all__ = [
    "AutomationDriver",
    "LoginResult",
    "OperationResult",
    "BrowserDriver",
    "DriverFactory",
    "load_driver_factory",
]
