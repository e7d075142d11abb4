from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient


def get_motor_client(mongodb_uri: str) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(mongodb_uri)
