"""
Ledger Adapters - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Keep key material out of log lines:
- Masking of private keys and wallet secrets
- Sanitization of RPC params and Tron request bodies
- Short previews of signed payloads

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log a raw private key or wallet secret
2. Signed transaction bytes are logged as a preview only

============================================================
"""

import logging
import re
from typing import Any


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Parameter names that should be masked
SENSITIVE_PARAMS = {
    "secret",
    "privatekey",
    "private_key",
    "passphrase",
    "password",
    "signature",
    "walletpassphrase",
}

# Bare 32-byte hex strings look like private keys
PRIVATE_KEY_PATTERN = re.compile(r"\b(?:0x)?[a-f0-9]{64}\b", re.IGNORECASE)


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_params(params: Any) -> Any:
    """
    Mask sensitive entries in RPC params or an HTTP body.

    Dicts are masked by key, lists element by element. Transaction
    hashes are 32 bytes too, so free-standing strings are left alone.
    """
    if isinstance(params, dict):
        masked = {}
        for key, value in params.items():
            if str(key).lower() in SENSITIVE_PARAMS:
                if isinstance(value, list):
                    masked[key] = [mask_value(str(v)) for v in value]
                else:
                    masked[key] = mask_value(str(value)) if value else value
            else:
                masked[key] = mask_params(value)
        return masked
    if isinstance(params, (list, tuple)):
        return [mask_params(v) for v in params]
    return params


def mask_text(text: str) -> str:
    """Replace anything shaped like a private key in free text."""
    if not text:
        return text
    return PRIVATE_KEY_PATTERN.sub("***KEY***", text)


def preview(payload: str, length: int = 16) -> str:
    """Shortened form of a long hex payload."""
    if not payload or len(payload) <= length * 2:
        return payload
    return f"{payload[:length]}...{payload[-length:]}"
