from __future__ import annotations

import asyncio

import bcrypt

from .config import settings


def _hash_sync(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


async def hash_password(password: str, rounds: int | None = None) -> str:
    cost = settings.bcrypt_rounds if rounds is None else rounds
    return await asyncio.to_thread(_hash_sync, password, cost)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
