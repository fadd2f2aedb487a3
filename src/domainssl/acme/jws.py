"""Client-side JWS signing and ACME key helpers (RFC 7515 / 7638 / 8555).

Everything here is pure: it turns keys, tokens and payloads into the
strings an ACME server expects, with no network access.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, utils
from cryptography.x509.oid import NameOID

# P-256 coordinates and signature components are 32 bytes each
_P256_COMPONENT_LEN = 32


def b64url_encode(b: bytes) -> str:
    """Encode bytes to base64url without padding."""
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    s = s.replace("-", "+").replace("_", "/")
    remainder = len(s) % 4
    if remainder:
        s += "=" * (4 - remainder)
    return base64.b64decode(s)


# --- Keys ----------------------------------------------------------------


def generate_private_key() -> ec.EllipticCurvePrivateKey:
    """Generate an EC P-256 key, used for both account and certificate keys."""
    return ec.generate_private_key(ec.SECP256R1())


def private_key_to_pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def load_private_key(pem: str) -> ec.EllipticCurvePrivateKey:
    key = serialization.load_pem_private_key(pem.encode("ascii"), password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        msg = "Only EC private keys are supported"
        raise TypeError(msg)
    return key


def public_jwk(key: ec.EllipticCurvePrivateKey) -> dict[str, str]:
    """Return the public JWK for an EC P-256 key."""
    numbers = key.public_key().public_numbers()
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": b64url_encode(numbers.x.to_bytes(_P256_COMPONENT_LEN, "big")),
        "y": b64url_encode(numbers.y.to_bytes(_P256_COMPONENT_LEN, "big")),
    }


def compute_thumbprint(jwk_dict: dict[str, Any]) -> str:
    """Compute the RFC 7638 JWK Thumbprint using SHA-256."""
    canonical = {
        "crv": jwk_dict["crv"],
        "kty": "EC",
        "x": jwk_dict["x"],
        "y": jwk_dict["y"],
    }
    # members in lexicographic order, no whitespace
    canonical_json = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return b64url_encode(hashlib.sha256(canonical_json.encode("ascii")).digest())


def key_authorization(token: str, jwk_dict: dict[str, Any]) -> str:
    """Compute the key authorization string: ``token.thumbprint``."""
    return f"{token}.{compute_thumbprint(jwk_dict)}"


def dns_txt_value(key_authz: str) -> str:
    """The DNS-01 TXT record value: ``base64url(sha256(key_authorization))``."""
    return b64url_encode(hashlib.sha256(key_authz.encode("ascii")).digest())


# --- Signing -------------------------------------------------------------


def sign_es256(key: ec.EllipticCurvePrivateKey, signing_input: bytes) -> bytes:
    """Sign and return the raw ``r || s`` JWS signature."""
    der_sig = key.sign(signing_input, ec.ECDSA(hashes.SHA256()))
    r, s = utils.decode_dss_signature(der_sig)
    return r.to_bytes(_P256_COMPONENT_LEN, "big") + s.to_bytes(_P256_COMPONENT_LEN, "big")


def sign_request(
    key: ec.EllipticCurvePrivateKey,
    url: str,
    nonce: str,
    payload: dict[str, Any] | None,
    *,
    kid: str | None = None,
) -> dict[str, str]:
    """Build a flattened JWS for an ACME request.

    Parameters
    ----------
    key:
        Account private key.
    url:
        Target URL, bound into the protected header.
    nonce:
        Fresh replay nonce.
    payload:
        JSON payload, or ``None`` for POST-as-GET (empty payload).
    kid:
        Account URL.  When omitted the public JWK is embedded instead
        (only valid for ``newAccount`` and certificate-key revocation).

    """
    protected: dict[str, Any] = {"alg": "ES256", "nonce": nonce, "url": url}
    if kid:
        protected["kid"] = kid
    else:
        protected["jwk"] = public_jwk(key)
    protected_b64 = b64url_encode(json.dumps(protected, separators=(",", ":")).encode())
    payload_b64 = "" if payload is None else b64url_encode(
        json.dumps(payload, separators=(",", ":")).encode()
    )
    signature = sign_es256(key, f"{protected_b64}.{payload_b64}".encode("ascii"))
    return {
        "protected": protected_b64,
        "payload": payload_b64,
        "signature": b64url_encode(signature),
    }


# --- CSR -----------------------------------------------------------------


def build_csr(key: ec.EllipticCurvePrivateKey, hostname: str) -> x509.CertificateSigningRequest:
    """Build a CSR with *hostname* as both CN and the single SAN entry."""
    return (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(hostname)]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )


def csr_to_pem(csr: x509.CertificateSigningRequest) -> str:
    return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


def csr_pem_to_der_b64url(csr_pem: str) -> str:
    csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
    return b64url_encode(csr.public_bytes(serialization.Encoding.DER))
