# storefront/repos/cart_repo.py
from typing import List

import redis
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from storefront.domain.cart import CartLine
from storefront.domain.errors import PersistenceUnavailable
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

_LINES = TypeAdapter(List[CartLine])


class CartRepo:
    """
    Trwaly magazyn koszyka: jeden blob JSON w redis pod cart:{user_id}.
    Bledy redis (po retry) zamieniane na PersistenceUnavailable.
    """

    def __init__(self, client: redis.Redis | None = None, url: str | None = None, ttl: int = CART_TTL_SECONDS):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl

    @staticmethod
    def _key(user_id: int) -> str:
        return f"cart:{user_id}"

    @redis_retry()
    def _get(self, key: str):
        return self.redis.get(key)

    @redis_retry()
    def _set(self, key: str, value: str):
        # EX - koszyk wygasa sam, TTL odswiezany przy kazdej zmianie
        return self.redis.set(name=key, value=value, ex=self.ttl)

    def load(self, user_id: int) -> List[CartLine]:
        key = self._key(user_id)
        try:
            raw = self._get(key)
        except RedisError as e:
            raise PersistenceUnavailable(f"Cannot read {key}: {e}") from e

        if not raw:
            return []

        try:
            return _LINES.validate_json(raw)
        except ValidationError as e:
            # uszkodzony blob nie blokuje klienta, zaczyna z pustym koszykiem
            logger.warning(f"Discarding unreadable cart blob {key}: {e}")
            return []

    def save(self, user_id: int, lines: List[CartLine]) -> None:
        key = self._key(user_id)
        try:
            self._set(key, _LINES.dump_json(lines).decode())
        except RedisError as e:
            raise PersistenceUnavailable(f"Cannot write {key}: {e}") from e
