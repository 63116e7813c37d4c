import json

from claimlink.observability.logging import log
from claimlink.settings import settings


def _last_line(capsys):
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_secrets_are_redacted_even_with_pii_redaction_off(capsys, monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_PII_REDACTION", False)
    log(event="x", token="s3cr3t-token-value", claimLink="https://wa.me/1?text=CLAIM%20abc", text="hello")
    out = _last_line(capsys)
    assert out["token"] == "[REDACTED:18chars]"
    assert "abc" not in out["claimLink"]
    assert out["text"] == "hello"


def test_message_bodies_redacted_when_enabled(capsys, monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_PII_REDACTION", True)
    log(event="x", text="send 1 to bob", nested={"token": "abc", "n": 1})
    out = _last_line(capsys)
    assert out["text"].startswith("[REDACTED")
    assert out["nested"]["token"].startswith("[REDACTED")
    assert out["nested"]["n"] == 1
