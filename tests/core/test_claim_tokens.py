from urllib.parse import parse_qs, urlparse

from claimlink.core import claim_tokens
from claimlink.settings import settings


def test_issue_token_returns_digest_not_plaintext():
    token, digest = claim_tokens.issue_token()
    assert len(token) >= 22  # >= 128 bits in url-safe base64
    assert token not in digest
    assert digest == claim_tokens.digest_token(token)


def test_verify_accepts_only_the_issued_token():
    token, digest = claim_tokens.issue_token()
    other, _ = claim_tokens.issue_token()
    assert claim_tokens.verify(token, digest) is True
    assert claim_tokens.verify(other, digest) is False
    assert claim_tokens.verify("", digest) is False


def test_link_prefills_claim_command_that_parser_recognizes(monkeypatch):
    monkeypatch.setattr(settings, "BOT_NUMBER", "+1 (555) 010-9999")
    monkeypatch.setattr(settings, "CLAIM_LINK_BASE", "https://wa.me")
    token, _ = claim_tokens.issue_token()

    link = claim_tokens.build_link(token)
    parsed = urlparse(link)
    assert parsed.netloc == "wa.me"
    assert parsed.path == "/15550109999"

    text = parse_qs(parsed.query)["text"][0]
    assert text == f"CLAIM {token}"
    assert claim_tokens.parse_claim_command(text) == token


def test_parse_claim_command_is_case_insensitive_and_strict():
    assert claim_tokens.parse_claim_command("claim abcDEF_123-x") == "abcDEF_123-x"
    assert claim_tokens.parse_claim_command("  CLAIM   abcdefghij  ") == "abcdefghij"
    assert claim_tokens.parse_claim_command("CLAIM short") is None
    assert claim_tokens.parse_claim_command("CLAIM abc def ghijkl") is None
    assert claim_tokens.parse_claim_command("please CLAIM abcdefghijk") is None
    assert claim_tokens.parse_claim_command(None) is None


def test_token_ref_is_digest_prefix():
    token, digest = claim_tokens.issue_token()
    assert claim_tokens.token_ref(token) == digest[:8]
    assert claim_tokens.token_ref(digest, is_digest=True) == digest[:8]
