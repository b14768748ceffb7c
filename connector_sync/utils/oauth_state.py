import base64
import binascii
import json
import secrets
from typing import Any


def encode_oauth_state(
    tenant_id: int,
    provider_slug: str,
    workspace_hint: str | None = None,
) -> str:
    state_data = {
        "nonce": secrets.token_urlsafe(16),
        "tenant_id": tenant_id,
        "provider_slug": provider_slug,
        "workspace_hint": workspace_hint,
    }
    return base64.urlsafe_b64encode(json.dumps(state_data).encode()).decode()


def decode_oauth_state(state: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64.urlsafe_b64decode(state.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}
