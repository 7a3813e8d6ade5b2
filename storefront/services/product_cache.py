# storefront/services/product_cache.py
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional, Tuple

from storefront.domain.cart import LineKey, ResolutionState, ResolvedProduct
from storefront.domain.errors import CatalogLookupFailed
from storefront.services.product_client import ProductClient
from storefront.utils.settings import CATALOG_WORKERS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class ProductResolutionCache:
    """
    Cache produktow z katalogu, klucz (product_id, product_type).

    - single-flight: jeden fetch na klucz, kolejne resolve() dostaja ten sam Future
    - wynik zapamietany do invalidate()
    - blad nie jest cache'owany, nastepne resolve() probuje jeszcze raz
    - kazdy klucz ma generacje, wynik fetcha ze starej generacji jest wyrzucany
    """

    def __init__(self, product_client: ProductClient, executor: ThreadPoolExecutor | None = None):
        self.product_client = product_client
        self.executor = executor or ThreadPoolExecutor(
            max_workers=CATALOG_WORKERS, thread_name_prefix="catalog"
        )
        self._lock = threading.RLock()
        self._resolved: Dict[LineKey, ResolvedProduct] = {}
        self._inflight: Dict[LineKey, Future] = {}
        self._failed: Dict[LineKey, str] = {}
        self._generation: Dict[LineKey, int] = {}

    # query - bez efektow ubocznych

    def peek(self, key: LineKey) -> Optional[ResolvedProduct]:
        with self._lock:
            return self._resolved.get(LineKey(*key))

    def state(self, key: LineKey) -> ResolutionState:
        key = LineKey(*key)
        with self._lock:
            if key in self._resolved:
                return ResolutionState.RESOLVED
            if key in self._inflight:
                return ResolutionState.RESOLVING
            if key in self._failed:
                return ResolutionState.FAILED
            return ResolutionState.UNRESOLVED

    def lookup(self, key: LineKey) -> Tuple[Optional[ResolvedProduct], ResolutionState]:
        """Produkt i stan odczytane pod jednym lockiem, spojne dla snapshotu."""
        key = LineKey(*key)
        with self._lock:
            return self._resolved.get(key), self.state(key)

    def last_error(self, key: LineKey) -> Optional[str]:
        with self._lock:
            return self._failed.get(LineKey(*key))

    # commands

    def resolve(self, key: LineKey) -> Future:
        key = LineKey(*key)
        with self._lock:
            cached = self._resolved.get(key)
            if cached is not None:
                done: Future = Future()
                done.set_result(cached)
                return done

            pending = self._inflight.get(key)
            if pending is not None:
                return pending

            return self._start_fetch(key)

    def refresh(self, key: LineKey) -> Future:
        """
        Nowy fetch dla klucza. Poprzedni fetch w locie jest porzucany,
        juz dostarczona wartosc zostaje widoczna do czasu nowego wyniku.
        """
        key = LineKey(*key)
        with self._lock:
            self._bump(key)
            self._inflight.pop(key, None)
            return self._start_fetch(key)

    def invalidate(self, key: LineKey | None = None) -> None:
        with self._lock:
            keys = [LineKey(*key)] if key is not None else list(
                set(self._resolved) | set(self._inflight) | set(self._failed)
            )
            for k in keys:
                self._bump(k)
                self._resolved.pop(k, None)
                self._inflight.pop(k, None)
                self._failed.pop(k, None)
        logger.info(f"Invalidated {len(keys)} catalog cache entries")

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False, cancel_futures=True)

    # internals

    def _bump(self, key: LineKey) -> int:
        self._generation[key] = self._generation.get(key, 0) + 1
        return self._generation[key]

    def _start_fetch(self, key: LineKey) -> Future:
        generation = self._generation.get(key, 0)
        self._failed.pop(key, None)

        logger.info(f"Resolving {key.product_type.value} {key.product_id} from catalog")
        # wolajacy dostaje Future konczony dopiero po zapisie do cache
        result: Future = Future()
        self._inflight[key] = result
        fetch = self.executor.submit(
            self.product_client.fetch_product, key.product_id, key.product_type
        )
        fetch.add_done_callback(lambda f: self._settle(key, generation, f, result))
        return result

    def _settle(self, key: LineKey, generation: int, fetch: Future, result: Future) -> None:
        with self._lock:
            self._store(key, generation, fetch, result)

        if fetch.cancelled():
            result.cancel()
        elif fetch.exception() is not None:
            result.set_exception(fetch.exception())
        else:
            result.set_result(fetch.result())

    def _store(self, key: LineKey, generation: int, fetch: Future, result: Future) -> None:
        if self._generation.get(key, 0) != generation:
            logger.info(f"Discarding superseded lookup for {key.product_id}")
            return

        if self._inflight.get(key) is result:
            del self._inflight[key]

        if fetch.cancelled():
            return

        error = fetch.exception()
        if error is None:
            self._resolved[key] = fetch.result()
            return

        reason = str(error)
        if not isinstance(error, CatalogLookupFailed):
            reason = f"{type(error).__name__}: {error}"
        self._failed[key] = reason
        logger.warning(f"Catalog lookup for {key.product_id} failed, will retry on next access: {reason}")
