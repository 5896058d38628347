"""SessionBridge - polling bridge for asynchronous browser automation sessions."""

__version__ = "1.0.0"
