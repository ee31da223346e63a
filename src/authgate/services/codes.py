"""One-time code generation and Argon2id hashing."""

import asyncio
import re
import secrets
from functools import lru_cache

from argon2 import PasswordHasher, Type
from argon2.exceptions import Argon2Error, InvalidHashError

OTP_LENGTH = 6
OTP_TTL_SECONDS = 5 * 60

_CODE_RE = re.compile(rf"[0-9]{{{OTP_LENGTH}}}", re.ASCII)


@lru_cache(maxsize=1)
def _get_hasher() -> PasswordHasher:
    return PasswordHasher(
        time_cost=2,
        memory_cost=15360,  # KiB, 15 MiB
        parallelism=1,
        type=Type.ID,
    )


def generate_code() -> str:
    """Generate a uniformly distributed 6-digit code, leading zeros kept."""
    return str(secrets.randbelow(10**OTP_LENGTH)).zfill(OTP_LENGTH)


def is_code_shaped(value: str) -> bool:
    """Check that ``value`` is exactly six ASCII digits."""
    return bool(_CODE_RE.fullmatch(value))


def hash_code(code: str) -> str:
    """Hash a code into a salted Argon2id digest string."""
    return _get_hasher().hash(code)


def verify_code(digest: str, candidate: str) -> bool:
    """Check ``candidate`` against ``digest``.

    Any failure, including a malformed digest, is a plain ``False``.
    """
    if not digest or not candidate:
        return False
    try:
        return _get_hasher().verify(digest, candidate)
    except (Argon2Error, InvalidHashError, ValueError, TypeError):
        return False


async def hash_code_async(code: str) -> str:
    """Hash in a worker thread to avoid blocking the event loop."""
    return await asyncio.to_thread(hash_code, code)


async def verify_code_async(digest: str, candidate: str) -> bool:
    """Verify in a worker thread to avoid blocking the event loop."""
    return await asyncio.to_thread(verify_code, digest, candidate)
