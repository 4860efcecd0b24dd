from redis import asyncio as aioredis

from expresstrafic.config import settings


# connections are opened lazily on first command
redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
