from __future__ import annotations

import re
import secrets

# Opaque handles: CSRF states and session ids.
#
# 16 random bytes = 128 bits of entropy, hex-encoded to 32 characters.  At
# that size a collision between two live handles is not a practical concern,
# so callers simply overwrite on the (theoretical) clash.

HANDLE_BYTES = 16

# Ingress check for handles coming back from the browser.  Anything outside
# this shape cannot have been issued by us, so it is rejected before it
# reaches a store lookup or a log line.
_HANDLE_RE = re.compile(r"^[A-Za-z0-9]{16,128}$")


def generate_handle() -> str:
    return secrets.token_hex(HANDLE_BYTES)


def is_well_formed(handle: str) -> bool:
    return _HANDLE_RE.fullmatch(handle) is not None
