"""PKCE (:rfc:`7636`) parameter generation for the authorization-code flow."""

from __future__ import annotations

import base64
import hashlib
import secrets

from cloudctl.models import PKCEContext


def code_challenge(code_verifier: str) -> str:
    """Derive the ``S256`` code challenge for *code_verifier*.

    Returns:
        The unpadded base64url encoding of ``sha256(code_verifier)``.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> PKCEContext:
    """Generate a fresh state, code verifier, and matching challenge.

    The verifier is 43-128 characters from the unreserved set, as the RFC
    requires. A new context must be created for every login attempt.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    # RFC 6819 section 4.4.1.8
    state = secrets.token_urlsafe(32)
    return PKCEContext(
        state=state,
        code_verifier=code_verifier,
        code_challenge=code_challenge(code_verifier),
    )
