import json
import os

import pandas as pd
import streamlit as st

from pii_masking.config import SECRET_ENV_VAR, SanitizerConfig
from pii_masking.errors import SanitizerError
from pii_masking.sanitizer import Sanitizer, mask_record_to_dict

# Page config
st.set_page_config(
    page_title="PII Payload Sanitizer",
    page_icon="🔐",
    layout="wide"
)

# Title
st.title("🔐 Reversible PII Payload Sanitizer")
st.markdown("Paste a JSON request body to see which fields get masked, then decode the tokens back.")

EXAMPLE_BODY = {
    "username": "JohnDoe",
    "password": "mysecretpass",
    "email": "john@example.com",
    "phone": "9876543210",
    "card": {"number": "4111111111111111", "cvv": "123"},
}


def _split_list(raw: str):
    """One entry per line; blank lines ignored. Empty input means 'not configured'."""
    items = [line.strip() for line in raw.splitlines() if line.strip()]
    return items or None


with st.sidebar:
    st.header("⚙️ Configuration")
    secret = st.text_input(
        "Signing secret",
        value=os.environ.get(SECRET_ENV_VAR, ""),
        type="password",
    )
    route = st.text_input("Route", value="/signup")
    allowlist = st.text_area("Allowlist routes (one per line)")
    denylist = st.text_area("Denylist routes (one per line)")
    fields_to_sanitize = st.text_area("Fields to sanitize (one per line)")
    fields_to_skip = st.text_area("Fields to skip (one per line)")
    regexes = st.text_area("Regex to sanitize (one per line)")

body_text = st.text_area("JSON body", value=json.dumps(EXAMPLE_BODY, indent=2), height=260)

# Sanitize button
sanitize_button = st.button("🚀 Sanitize")


def analyze_payload(sanitizer, payload, route):
    """
    Run the sanitizer on one payload.

    Returns:
        sanitized: the masked payload
        df: DataFrame with columns [Path, Field, Type, Rule]
    """
    report = []
    sanitized = sanitizer.sanitize_object(payload, route, report=report)

    rows = [mask_record_to_dict(r) for r in report]
    df = pd.DataFrame(rows, columns=["path", "field", "type", "rule"])
    df.columns = ["Path", "Field", "Type", "Rule"]
    return sanitized, df


# Session key for the last masked payload. Only tokens are kept, never the raw input.
LAST_SANITIZED_KEY = "pii_last_sanitized"


if sanitize_button:

    try:
        payload = json.loads(body_text)
        config = SanitizerConfig(
            signing_secret=secret,
            allowlist_routes=_split_list(allowlist),
            denylist_routes=_split_list(denylist),
            fields_to_sanitize=_split_list(fields_to_sanitize),
            fields_to_skip=_split_list(fields_to_skip) or (),
            regex_to_sanitize=_split_list(regexes) or (),
        )
        sanitizer = Sanitizer(config)
    except ValueError as e:
        # SanitizerError subclasses ValueError, as does json.JSONDecodeError.
        st.error(f"⚠️ {e}")
    else:
        sanitized, df = analyze_payload(sanitizer, payload, route)
        st.session_state[LAST_SANITIZED_KEY] = sanitized

        # Layout columns
        col1, col2 = st.columns([2, 1])

        with col1:
            st.subheader("📋 Sanitized body")
            st.json(sanitized)

        with col2:
            st.subheader("🏷 Masked fields")
            if not sanitizer.policy.is_route_in_scope(route):
                st.info("Route is out of scope: body passed through unchanged.")
            elif df.empty:
                st.info("No fields were masked.")
            else:
                st.dataframe(df, use_container_width=True)
            st.metric(label="Masked values", value=len(df))

        st.markdown("---")
        with st.expander("ℹ️ How masking works"):
            st.write("""
            • Every masked value becomes `hex(iv):hex(ciphertext)` (AES-256-CTR)
            • Anyone holding the signing secret can decode it
            • Tokens carry no integrity check: treat them as confidential, not tamper-proof
            """)

last = st.session_state.get(LAST_SANITIZED_KEY)
if last is not None:
    st.markdown("---")
    st.subheader("🔓 Decode")
    if st.button("Decode last sanitized body"):
        try:
            st.json(Sanitizer({"signingSecret": secret}).decode_body(last))
        except SanitizerError as e:
            st.error(f"⚠️ {e}")
elif not sanitize_button:
    st.info("Edit the JSON body and click 'Sanitize' to begin.")
