from connector_sync.utils.dates import parse_remote_datetime, utcnow
from connector_sync.utils.oauth_state import decode_oauth_state, encode_oauth_state

__all__ = [
    "decode_oauth_state",
    "encode_oauth_state",
    "parse_remote_datetime",
    "utcnow",
]
