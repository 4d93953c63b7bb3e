"""
Exception types raised by the masking engine.

Configuration problems surface once, when the sanitizer is built. Token
problems surface on decode. Sanitization itself has no failure path for
well-formed input.
"""

from __future__ import annotations


class SanitizerError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(SanitizerError, ValueError):
    """Missing signing secret, wrong option types or unknown options."""


class InvalidRegexPattern(ConfigurationError):
    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"regexToSanitize entry {pattern!r} does not compile: {reason}")
        self.pattern = pattern


class MalformedToken(SanitizerError, ValueError):
    """String is not a well-formed `<ivHex>:<ciphertextHex>` pair."""


class DecryptionFailed(SanitizerError, ValueError):
    """Hex decoding, the cipher step or UTF-8 decoding of the plaintext failed."""
