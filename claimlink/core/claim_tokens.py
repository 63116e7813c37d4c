import hashlib
import hmac
import re
import secrets
from typing import Optional, Tuple
from urllib.parse import quote

from claimlink.settings import settings

# 24 random bytes -> 32 url-safe chars (192 bits), within the parser's [A-Za-z0-9_-]{10,}
TOKEN_BYTES = 24

CLAIM_COMMAND_RE = re.compile(r"^\s*CLAIM\s+([A-Za-z0-9_-]{10,})\s*$", re.IGNORECASE)


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token() -> Tuple[str, str]:
    """Return (plaintext, digest). Callers must not persist or log the plaintext."""
    token = secrets.token_urlsafe(TOKEN_BYTES)
    return token, digest_token(token)


def verify(token: str, stored_digest: str) -> bool:
    if not token or not stored_digest:
        return False
    return hmac.compare_digest(digest_token(token), stored_digest)


def claim_command(token: str) -> str:
    return f"CLAIM {token}"


def build_link(token: str) -> str:
    """Deep link that pre-fills `CLAIM <token>` in a chat with the bot."""
    base = (settings.CLAIM_LINK_BASE or "https://wa.me").rstrip("/")
    bot = re.sub(r"\D", "", settings.BOT_NUMBER or "")
    return f"{base}/{bot}?text={quote(claim_command(token), safe='')}"


def parse_claim_command(text: Optional[str]) -> Optional[str]:
    m = CLAIM_COMMAND_RE.match(text or "")
    return m.group(1) if m else None


def token_ref(token_or_digest: str, *, is_digest: bool = False) -> str:
    """Short, non-reversible reference for logs (digest prefix)."""
    d = token_or_digest if is_digest else digest_token(token_or_digest or "")
    return d[:8]
