import json
import time
from claimlink.settings import settings

# Message bodies are redacted when PII redaction is enabled
SENSITIVE_KEYS = {"text", "message", "reply", "payload", "content"}

# Never written in recoverable form, regardless of settings
SECRET_KEYS = {"token", "tokenPlain", "claimLink", "link", "secret", "privateKey", "appSecret"}

def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    return v

def _scrub(k, v, redact_pii: bool):
    if k in SECRET_KEYS:
        return _redact_value(v)
    if redact_pii and k in SENSITIVE_KEYS:
        return _redact_value(v)
    if isinstance(v, dict):
        return {sk: _scrub(sk, sv, redact_pii) for sk, sv in v.items()}
    return v

def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}
    redact_pii = bool(settings.ENABLE_PII_REDACTION)
    payload.update({k: _scrub(k, v, redact_pii) for k, v in fields.items()})
    print(json.dumps(payload, ensure_ascii=False, default=str))
