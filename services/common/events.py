"""
共通: ドメインイベントの発行 (Redis Pub/Sub)

コミット済みの事実をイベントとして他サービスへ通知する。
Redis Pub/Sub は fire-and-forget 方式なので、発行に失敗しても
リクエスト自体は失敗させずにログに残すだけにする。
"""

import json
import logging

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

ORDER_EVENTS_CHANNEL = "order_events"
PRODUCT_EVENTS_CHANNEL = "product_events"


class EventPublisher:
    """
    イベントを Redis チャネルへ JSON で発行する。

    redis が None の場合（REDIS_URL 未設定）は発行しない。
    """

    def __init__(self, redis: aioredis.Redis | None = None) -> None:
        self.redis = redis

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def publish(self, channel: str, event: BaseModel) -> None:
        event_type = type(event).__name__
        if self.redis is None:
            logger.debug("Event publishing disabled, dropping %s", event_type)
            return
        payload = json.dumps(
            {
                "event_type": event_type,
                "data": event.model_dump(mode="json"),
            },
            default=str,
        )
        try:
            await self.redis.publish(channel, payload)
        except RedisError:
            logger.exception("Failed to publish %s to %s", event_type, channel)

    async def aclose(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()


def publisher_from_url(redis_url: str | None) -> EventPublisher:
    if not redis_url:
        return EventPublisher(None)
    return EventPublisher(aioredis.from_url(redis_url, decode_responses=True))
