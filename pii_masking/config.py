"""
Sanitizer configuration.

A `SanitizerConfig` is built once and never changes afterwards. All validation
happens here so that a bad secret, a bad regex or an unknown detector name fails
at startup instead of on the first request.

Loading from JSON:
{
  "signingSecret": "...",
  "allowlistRoutes": ["/signup"],
  "fieldsToSanitize": ["password", "email"],
  "regexToSanitize": ["\\\\d{10}"]
}

camelCase option names are accepted alongside the snake_case attribute names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional
import json
import os
import re

from pii_detection.pii_classifier import PiiType, is_pii_type
from pii_masking.errors import ConfigurationError, InvalidRegexPattern


SECRET_ENV_VAR = "PII_SANITIZER_SIGNING_SECRET"

_CAMEL_TO_SNAKE: Mapping[str, str] = {
    "signingSecret": "signing_secret",
    "allowlistRoutes": "allowlist_routes",
    "denylistRoutes": "denylist_routes",
    "disable": "disable",
    "regexToSanitize": "regex_to_sanitize",
    "fieldsToSanitize": "fields_to_sanitize",
    "fieldsToSkip": "fields_to_skip",
    "maxStringScanLen": "max_string_scan_len",
    "detectors": "detectors",
}


def _str_tuple(name: str, values: Optional[Iterable[Any]]) -> Optional[tuple[str, ...]]:
    if values is None:
        return None
    if isinstance(values, str):
        raise ConfigurationError(f"{name} must be a list of strings, not a single string")
    out = tuple(values)
    for v in out:
        if not isinstance(v, str):
            raise ConfigurationError(f"{name} entries must be strings, got {v!r}")
    return out


def _str_set(name: str, values: Optional[Iterable[Any]]) -> Optional[frozenset[str]]:
    items = _str_tuple(name, values)
    return None if items is None else frozenset(items)


@dataclass(frozen=True)
class SanitizerConfig:
    """
    Immutable sanitizer options.

    - signing_secret: the only key material; tokens are decodable by anyone holding it
    - allowlist_routes / denylist_routes: exact route strings (literal membership)
    - disable: turn sanitization off entirely
    - regex_to_sanitize: patterns whose matches are masked inside any string
    - fields_to_sanitize: if non-empty, only these field names are masked (no auto-detect)
    - fields_to_skip: field names never masked
    - max_string_scan_len: strings longer than this are not regex scanned
    - detectors: PII types auto-detect may mask (None = all but "custom")
    """

    signing_secret: str
    allowlist_routes: Optional[tuple[str, ...]] = None
    denylist_routes: Optional[tuple[str, ...]] = None
    disable: bool = False
    regex_to_sanitize: tuple[str, ...] = ()
    fields_to_sanitize: Optional[frozenset[str]] = None
    fields_to_skip: frozenset[str] = frozenset()
    max_string_scan_len: Optional[int] = None
    detectors: Optional[frozenset[PiiType]] = None

    compiled_regexes: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.signing_secret, str) or not self.signing_secret:
            raise ConfigurationError("signingSecret is required")
        if not isinstance(self.disable, bool):
            raise ConfigurationError(f"disable must be a bool, got {self.disable!r}")

        # Normalize list-ish inputs so the dataclass stays hashable and read-only.
        object.__setattr__(self, "allowlist_routes", _str_tuple("allowlistRoutes", self.allowlist_routes))
        object.__setattr__(self, "denylist_routes", _str_tuple("denylistRoutes", self.denylist_routes))
        object.__setattr__(self, "regex_to_sanitize", _str_tuple("regexToSanitize", self.regex_to_sanitize) or ())
        object.__setattr__(self, "fields_to_sanitize", _str_set("fieldsToSanitize", self.fields_to_sanitize))
        object.__setattr__(self, "fields_to_skip", _str_set("fieldsToSkip", self.fields_to_skip) or frozenset())
        object.__setattr__(self, "detectors", _str_set("detectors", self.detectors))

        if self.max_string_scan_len is not None:
            if isinstance(self.max_string_scan_len, bool) or not isinstance(self.max_string_scan_len, int):
                raise ConfigurationError(
                    f"maxStringScanLen must be an int, got {self.max_string_scan_len!r}"
                )
            if self.max_string_scan_len < 0:
                raise ConfigurationError("maxStringScanLen must be >= 0")

        if self.detectors is not None:
            unknown = sorted(d for d in self.detectors if not is_pii_type(d))
            if unknown:
                raise ConfigurationError(f"Unknown PII type(s) in detectors: {unknown!r}")

        compiled = []
        for pattern in self.regex_to_sanitize:
            try:
                regex = re.compile(pattern)
            except re.error as e:
                raise InvalidRegexPattern(pattern, str(e)) from e
            # An empty match would be "masked" as a bare "<iv>:" token between characters.
            if regex.match("") is not None:
                raise InvalidRegexPattern(pattern, "matches the empty string")
            compiled.append(regex)
        object.__setattr__(self, "compiled_regexes", tuple(compiled))

    @property
    def explicit_fields(self) -> bool:
        """True when fields_to_sanitize switches masking into allowlist mode."""
        return bool(self.fields_to_sanitize)


def config_from_dict(raw: Mapping[str, Any]) -> SanitizerConfig:
    """
    Build a config from a plain mapping (camelCase or snake_case keys).
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"config must be a mapping, got {type(raw).__name__}")

    known = set(_CAMEL_TO_SNAKE.values())
    kwargs: dict[str, Any] = {}
    for k, v in raw.items():
        name = _CAMEL_TO_SNAKE.get(k, k)
        if name not in known:
            raise ConfigurationError(f"Unknown config option: {k!r}")
        kwargs[name] = v

    if "signing_secret" not in kwargs:
        raise ConfigurationError("signingSecret is required")
    return SanitizerConfig(**kwargs)


def load_config_from_json(path: str, *, secret_env: str = SECRET_ENV_VAR) -> SanitizerConfig:
    """
    Load a config from a JSON file.

    When the file has no signing secret, the environment variable `secret_env`
    is used instead so the secret can stay out of files checked into source control.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top-level JSON value must be an object")

    if "signingSecret" not in raw and "signing_secret" not in raw:
        secret = os.environ.get(secret_env)
        if secret:
            raw["signingSecret"] = secret
    return config_from_dict(raw)
