"""Redaction policy tests."""

from __future__ import annotations

from captureflow.security.redaction import REDACTED, redact_mapping, redact_text


def test_redact_text_masks_api_tokens() -> None:
    """Sensitive token-like values should be masked in text."""
    text = "Authorization: Bearer abcDEF1234567890 token=tok1234567890123456"
    redacted = redact_text(text)
    assert "abcDEF1234567890" not in redacted
    assert "tok1234567890123456" not in redacted
    assert redacted.startswith("Authorization: Bearer [REDACTED]")


def test_redact_text_masks_signed_url_parameters() -> None:
    """Signed upload URLs should not leak their signatures into logs."""
    url = "https://bucket.example/receipt.jpg?X-Amz-Signature=deadbeef&size=3"
    redacted = redact_text(url)
    assert "deadbeef" not in redacted
    assert "size=3" in redacted


def test_redact_mapping_masks_nested_values() -> None:
    """Redaction should traverse nested dictionaries and lists."""
    payload = {
        "api_key": "whatever",
        "nested": {
            "langfuse": "sk-lf-PRIVATESECRET",
            "values": ["safe", "Authorization: Bearer sk-XYZXYZXYZXYZXYZ"],
        },
        "image_ref": "/tmp/receipt.jpg",
    }
    redacted = redact_mapping(payload)
    assert redacted["api_key"] == REDACTED
    assert redacted["nested"]["langfuse"] == REDACTED
    assert redacted["nested"]["values"][0] == "safe"
    assert REDACTED in redacted["nested"]["values"][1]
    assert redacted["image_ref"] == "/tmp/receipt.jpg"
