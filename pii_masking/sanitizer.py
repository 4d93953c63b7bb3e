"""
Payload sanitizer: masks PII leaves of JSON-like values with reversible tokens.

Core API:
- Sanitizer.sanitize_object(value, route): mask string leaves chosen by the policy
- Sanitizer.decode_body(value): turn tokens back into the original strings

Both walks rebuild every dict and list they visit; the caller's value is never
modified, so one Sanitizer can serve concurrent requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, TypedDict, Union
import logging
import re

from pii_detection.pii_classifier import PiiType
from pii_masking.config import SanitizerConfig, config_from_dict, load_config_from_json
from pii_masking.errors import ConfigurationError, DecryptionFailed, MalformedToken
from pii_masking.policy import LeafDecision, PolicyResolver, mask_profile
from pii_masking.token_codec import TOKEN_SEPARATOR, TokenCodec
from utils.log_sanitize import sanitize_for_log

logger = logging.getLogger(__name__)


JsonValue = Union[dict[str, Any], list[Any], str, int, float, bool, None]
PathSegment = Union[str, int]


@dataclass(frozen=True, slots=True)
class MaskRecord:
    """One masking event. Carries where and why, never the value."""

    path: tuple[PathSegment, ...]
    field: str
    pii_type: PiiType
    rule: str


class MaskRecordDict(TypedDict):
    path: str
    field: str
    type: PiiType
    rule: str


def format_path(path: tuple[PathSegment, ...]) -> str:
    out = "$"
    for seg in path:
        out += f"[{seg}]" if isinstance(seg, int) else f".{seg}"
    return out


def mask_record_to_dict(record: MaskRecord) -> MaskRecordDict:
    return {
        "path": format_path(record.path),
        "field": record.field,
        "type": record.pii_type,
        "rule": record.rule,
    }


class Sanitizer:
    """
    Detects and masks PII in request payloads.

    `config` is a SanitizerConfig or a mapping accepted by `config_from_dict`;
    a missing or empty signing secret raises ConfigurationError here.
    """

    def __init__(self, config: Union[SanitizerConfig, Mapping[str, Any]]) -> None:
        if config is None:
            raise ConfigurationError("signingSecret is required")
        if isinstance(config, Mapping):
            config = config_from_dict(config)
        elif not isinstance(config, SanitizerConfig):
            raise ConfigurationError(f"config must be a SanitizerConfig or mapping, got {type(config).__name__}")

        self.config = config
        self.policy = PolicyResolver(config)
        self.codec = TokenCodec.from_secret(config.signing_secret)

    @classmethod
    def from_json(cls, path: str) -> "Sanitizer":
        return cls(load_config_from_json(path))

    def encode_value(self, value: str) -> str:
        return self.codec.encode(value)

    def decode_value(self, token: str) -> str:
        return self.codec.decode(token)

    def sanitize_object(
        self,
        value: JsonValue,
        route: str,
        *,
        report: Optional[list[MaskRecord]] = None,
    ) -> JsonValue:
        """
        Return a copy of `value` with PII string leaves replaced by tokens.

        Routes outside the configured scope get the input object back as-is.
        When `report` is a list, one MaskRecord is appended per masked leaf
        (per match, for regex masking).
        """
        if not self.policy.is_route_in_scope(route):
            logger.debug("route %r not in scope, payload left unchanged", route)
            return value
        return self._walk(value, (), "", report)

    def decode_body(self, value: JsonValue, *, strict: bool = True) -> JsonValue:
        """
        Return a copy of `value` with every colon-containing string decoded.

        Any string with a colon is expected to hold tokens, whether or not this
        sanitizer produced it. Tokens embedded in text (regex masking) are
        decoded in place. With strict=True (default) a colon string without a
        token, or a token that does not decrypt, raises MalformedToken or
        DecryptionFailed; with strict=False the string is left unchanged and a
        warning is logged.
        """
        return self._decode(value, (), strict)

    def _walk(
        self,
        value: Any,
        path: tuple[PathSegment, ...],
        field_name: str,
        report: Optional[list[MaskRecord]],
    ) -> Any:
        if isinstance(value, Mapping):
            return {k: self._walk(v, path + (k,), str(k), report) for k, v in value.items()}
        # List items are governed by the name of the field holding the list.
        if isinstance(value, (list, tuple)):
            return [self._walk(item, path + (i,), field_name, report) for i, item in enumerate(value)]
        if isinstance(value, str):
            return self._sanitize_leaf(value, path, field_name, report)
        return value

    def _sanitize_leaf(
        self,
        value: str,
        path: tuple[PathSegment, ...],
        field_name: str,
        report: Optional[list[MaskRecord]],
    ) -> str:
        decision = self.policy.resolve_leaf(field_name, value)

        if decision.rule == "regex":
            return self._mask_matches(decision.pattern, value, path, field_name, report)
        if not decision.masks:
            return value

        self._record(report, MaskRecord(path, field_name, decision.pii_type, decision.rule))
        return self._mask(decision, value)

    def _mask_matches(
        self,
        pattern: re.Pattern[str],
        value: str,
        path: tuple[PathSegment, ...],
        field_name: str,
        report: Optional[list[MaskRecord]],
    ) -> str:
        decision = LeafDecision("regex", pii_type="custom", pattern=pattern)

        def replace(m: re.Match[str]) -> str:
            if not m.group(0):
                return ""
            self._record(report, MaskRecord(path, field_name, "custom", "regex"))
            return self._mask(decision, m.group(0))

        return pattern.sub(replace, value)

    def _mask(self, decision: LeafDecision, value: str) -> str:
        profile = mask_profile(decision.pii_type)
        if profile.action == "encrypt":
            return self.codec.encode(value)
        raise ValueError(f"Unsupported mask action: {profile.action!r}")

    def _record(self, report: Optional[list[MaskRecord]], record: MaskRecord) -> None:
        logger.debug("masked %s", mask_record_to_dict(record))
        if report is not None:
            report.append(record)

    def _decode(self, value: Any, path: tuple[PathSegment, ...], strict: bool) -> Any:
        if isinstance(value, Mapping):
            return {k: self._decode(v, path + (k,), strict) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._decode(item, path + (i,), strict) for i, item in enumerate(value)]
        if isinstance(value, str) and TOKEN_SEPARATOR in value:
            try:
                return self.codec.decode_embedded(value)
            except (MalformedToken, DecryptionFailed) as e:
                if strict:
                    raise
                logger.warning(
                    "left undecodable string unchanged: %s",
                    sanitize_for_log({"path": format_path(path), "value": value, "error": str(e)}),
                )
                return value
        return value
