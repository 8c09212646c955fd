# app/security/assertion.py
import time
from typing import Optional

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from app.errors import SigningError
from app.models.service_account import ServiceAccountKey

ASSERTION_ALG = "RS256"
ASSERTION_TTL = 3600  # segundos


def load_private_key(pem: str) -> RSAPrivateKey:
    """
    Carga la clave privada PEM de la cuenta de servicio.
    Si el JSON se pegó en una variable de entorno suelen quedar
    los saltos de línea como '\\n' literales: se desescapan.
    """
    pem = pem.replace("\\n", "\n").strip()
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"Clave privada mal formada: {e}") from e

    if not isinstance(key, RSAPrivateKey):
        raise SigningError("La clave privada no es RSA")
    return key


def sign_assertion(service_account: ServiceAccountKey, now: Optional[int] = None) -> str:
    """
    Firma la aserción JWT (RS256) que se cambia por un access token:
      header = {alg: RS256, typ: JWT}
      claims = {iss, scope, aud, exp = now + 3600, iat = now}
    Devuelve <header>.<claims>.<firma> en base64url sin padding.
    """
    if now is None:
        now = int(time.time())

    key = load_private_key(service_account.private_key)
    claims = {
        "iss": service_account.client_email,
        "scope": service_account.scope,
        "aud": service_account.token_uri,
        "exp": now + ASSERTION_TTL,
        "iat": now,
    }

    try:
        return jwt.encode(claims, key, algorithm=ASSERTION_ALG, headers={"typ": "JWT"})
    except (jwt.PyJWTError, ValueError) as e:
        raise SigningError(f"No se pudo firmar la aserción: {e}") from e
