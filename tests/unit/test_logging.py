from src.shared.logging import PIIRedactionProcessor


def test_email_keeps_domain():
    out = PIIRedactionProcessor()(None, "info", {"event": "sent to rahim.uddin@example.com"})
    assert out["event"] == "sent to ***@example.com"


def test_phone_keeps_prefix_and_last_four():
    out = PIIRedactionProcessor()(None, "info", {"phone": "01712345678"})
    assert out["phone"] == "01****5678"


def test_redaction_is_recursive_and_leaves_non_strings():
    out = PIIRedactionProcessor()(
        None,
        "info",
        {"customer": {"contacts": ["a@b.com", 42]}, "count": 3},
    )
    assert out == {"customer": {"contacts": ["***@b.com", 42]}, "count": 3}
