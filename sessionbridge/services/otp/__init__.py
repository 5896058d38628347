"""One-time code queue, extraction and delivery."""

from .bridge import PendingInputBridge
from .models import CodeSource, NotificationResult, PendingCodeEntry, make_key
from .pattern_matcher import OTPPatternMatcher, build_matchers
from .queue import PendingCodeQueue

__all__ = [
    "CodeSource",
    "NotificationResult",
    "OTPPatternMatcher",
    "PendingCodeEntry",
    "PendingCodeQueue",
    "PendingInputBridge",
    "build_matchers",
    "make_key",
]
