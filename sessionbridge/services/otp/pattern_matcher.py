"""Pattern matching utilities for OTP extraction.

Each external source gets its own ``OTPPatternMatcher`` so a new bank or
notification format is a new pattern list, not new routing code.
"""

import re
from typing import Dict, List, Optional, Pattern

from loguru import logger

from .models import CodeSource

# Primary SMS source: "Никому не говорите код 4399. Вход в ..." style messages
SMS_OTP_PATTERNS: List[str] = [
    r"код\s+(\d{4})",
    # --- Keyword-based patterns ---
    r"(?:verification|одноразовый)\s*(?:code|код)?[:\s]+(\d{4,6})",
    r"(?:OTP|one.time)\s*(?:code|password)?[:\s]+(\d{4,6})",
    r"(?:code|kod|пароль)[:\s]+(\d{4,6})",
]

# Secondary source: short 4-digit confirmation codes
SECONDARY_SMS_OTP_PATTERNS: List[str] = [
    r"(?:код|code)[:\s]+(\d{4,6})",
    r"\b(\d{4})\b",
]

DEFAULT_SOURCE_PATTERNS: Dict[CodeSource, List[str]] = {
    CodeSource.SMS: SMS_OTP_PATTERNS,
    CodeSource.SECONDARY_SMS: SECONDARY_SMS_OTP_PATTERNS,
}


class OTPPatternMatcher:
    """Regex-based OTP code extractor."""

    DEFAULT_PATTERNS: List[str] = SMS_OTP_PATTERNS

    def __init__(self, custom_patterns: Optional[List[str]] = None):
        """
        Initialize OTP pattern matcher.

        Args:
            custom_patterns: Optional list of regex patterns, tried in order;
                the first capture group is the code
        """
        patterns = custom_patterns or self.DEFAULT_PATTERNS
        self._patterns: List[Pattern] = [re.compile(p, re.IGNORECASE) for p in patterns]

    def extract_otp(self, text: str) -> Optional[str]:
        """
        Extract OTP code from text.

        Args:
            text: Text to search for OTP

        Returns:
            Extracted OTP code or None
        """
        if not text:
            return None

        for pattern in self._patterns:
            match = pattern.search(text)
            if match:
                logger.debug("OTP code successfully extracted")
                return match.group(1)

        logger.warning(f"No OTP found in text: {text[:50]}...")
        return None


def build_matchers(
    extra_patterns: Optional[Dict[CodeSource, List[str]]] = None,
) -> Dict[CodeSource, OTPPatternMatcher]:
    """
    Create one matcher per source.

    Extra patterns for a source are tried before its defaults.
    """
    extra_patterns = extra_patterns or {}
    return {
        source: OTPPatternMatcher(list(extra_patterns.get(source, [])) + patterns)
        for source, patterns in DEFAULT_SOURCE_PATTERNS.items()
    }
