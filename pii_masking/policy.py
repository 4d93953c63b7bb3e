"""
Masking policy: which routes are sanitized, and what happens to each string leaf.

Route gate (`PolicyResolver.is_route_in_scope`):
- disable=True puts nothing in scope
- a configured allowlist requires literal membership
- a configured denylist excludes literal members
The two lists are checked independently; neither relaxes the other.

Leaf decision (`PolicyResolver.resolve_leaf`), strict precedence:
1. field in fields_to_skip             -> "skip"
2. a regex_to_sanitize pattern matches -> "regex" (first matching pattern only)
3. fields_to_sanitize is non-empty     -> "field" if listed, else "pass"
4. auto-detect                         -> "detect" if classified as non-custom, else "pass"

Policy is keyed by the field name alone (the last key on the path), not by the
full path: every "email" field gets the same treatment wherever it is nested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Optional
import re

from pii_detection.pii_classifier import PiiType, classify
from pii_masking.config import SanitizerConfig


MaskAction = Literal["encrypt"]
LeafRule = Literal["skip", "regex", "field", "detect", "pass"]


@dataclass(frozen=True, slots=True)
class MaskProfile:
    """
    What to do with a value of one PII type.

    Every type encrypts today. The table exists so that per-type behavior
    (partial masking, formatting-preserving tokens) can be added without
    touching the classifier.
    """

    action: MaskAction
    rationale: str


MASKING_POLICY: Mapping[PiiType, MaskProfile] = {
    "pan_card": MaskProfile("encrypt", "Government tax ID."),
    "credit_card": MaskProfile("encrypt", "Payment instrument number."),
    "cvv": MaskProfile("encrypt", "Card security code or other short numeric secret."),
    "password": MaskProfile("encrypt", "Credential."),
    "email": MaskProfile("encrypt", "Direct identifier and contact channel."),
    "phone": MaskProfile("encrypt", "Direct identifier often tied to OTP and account recovery."),
    "aadhar": MaskProfile("encrypt", "Government ID with regulatory implications."),
    "custom": MaskProfile("encrypt", "Matched by a configured pattern or listed field."),
}


@dataclass(frozen=True, slots=True)
class LeafDecision:
    rule: LeafRule
    pii_type: Optional[PiiType] = None
    pattern: Optional[re.Pattern[str]] = None

    @property
    def masks(self) -> bool:
        return self.rule in ("regex", "field", "detect")


SKIP = LeafDecision("skip")
PASS = LeafDecision("pass")


class PolicyResolver:
    def __init__(self, config: SanitizerConfig) -> None:
        self.config = config

    def is_route_in_scope(self, route: str) -> bool:
        cfg = self.config
        if cfg.disable:
            return False
        if cfg.allowlist_routes is not None and route not in cfg.allowlist_routes:
            return False
        if cfg.denylist_routes is not None and route in cfg.denylist_routes:
            return False
        return True

    def _matching_pattern(self, value: str) -> Optional[re.Pattern[str]]:
        limit = self.config.max_string_scan_len
        if limit is not None and len(value) > limit:
            return None
        for pattern in self.config.compiled_regexes:
            if any(m.group(0) for m in pattern.finditer(value)):
                return pattern
        return None

    def resolve_leaf(self, field_name: str, value: str) -> LeafDecision:
        cfg = self.config

        if field_name in cfg.fields_to_skip:
            return SKIP

        pattern = self._matching_pattern(value)
        if pattern is not None:
            return LeafDecision("regex", pii_type="custom", pattern=pattern)

        if cfg.explicit_fields:
            if field_name in cfg.fields_to_sanitize:
                return LeafDecision("field", pii_type=classify(field_name, value))
            return PASS

        pii_type = classify(field_name, value)
        if pii_type == "custom":
            return PASS
        if cfg.detectors is not None and pii_type not in cfg.detectors:
            return PASS
        return LeafDecision("detect", pii_type=pii_type)


def mask_profile(pii_type: PiiType) -> MaskProfile:
    return MASKING_POLICY[pii_type]
