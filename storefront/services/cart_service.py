# storefront/services/cart_service.py
import threading
from collections import OrderedDict
from concurrent.futures import Future, wait
from typing import List

from storefront.domain.cart import CartLine, CartSnapshot, LineKey, ResolutionState
from storefront.domain.errors import CartLineNotFound, InvalidQuantity, PersistenceUnavailable
from storefront.domain.states import ProductType
from storefront.repos.cart_repo import CartRepo
from storefront.services.pricing import PricingPolicy, build_snapshot
from storefront.services.product_cache import ProductResolutionCache
from storefront.utils.settings import CART_REGISTRY_SIZE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartPricingEngine:
    """
    Koszyk jednego klienta, prosty podzial cqrs:
    commands (add, set, select, remove, clear) zmieniaja linie, zapisuja je i uruchamiaja reconcile
    query (snapshot) tylko liczy, nie pobiera niczego z katalogu
    """

    def __init__(
        self,
        user_id: int,
        repo: CartRepo,
        cache: ProductResolutionCache,
        policy: PricingPolicy | None = None,
    ):
        self.user_id = user_id
        self.repo = repo
        self.cache = cache
        self.policy = policy or PricingPolicy()
        self.persistent = True
        self._loaded = False
        self._lock = threading.RLock()
        self._lines: List[CartLine] = self._load()
        self.reconcile()

    def _load(self) -> List[CartLine]:
        try:
            lines = self.repo.load(self.user_id)
        except PersistenceUnavailable as e:
            logger.warning(f"Cart store unavailable for user {self.user_id}, running in memory: {e}")
            self.persistent = False
            self._loaded = False
            return []
        self._loaded = True
        return lines

    def _persist(self) -> bool:
        """
        Zapis probowany przy kazdej zmianie, tryb pamieciowy trwa tylko dopoki redis nie odpowiada.
        Zwraca True, jesli przy powrocie magazynu doszly linie zapisane wczesniej.
        """
        merged = False
        try:
            if not self._loaded:
                # koszyk zaczal w pamieci, zapisane linie nie moga zostac nadpisane
                stored = self.repo.load(self.user_id)
                known = {line.key for line in self._lines}
                extra = [line for line in stored if line.key not in known]
                self._lines = extra + self._lines
                self._loaded = True
                merged = bool(extra)
            self.repo.save(self.user_id, self._lines)
        except PersistenceUnavailable as e:
            if self.persistent:
                logger.warning(f"Cart store unavailable for user {self.user_id}, running in memory: {e}")
            self.persistent = False
            return merged

        if not self.persistent:
            logger.info(f"Cart store back for user {self.user_id}, {len(self._lines)} lines saved")
        self.persistent = True
        return merged

    def _index(self, key: LineKey) -> int:
        key = LineKey(key[0], ProductType(key[1]))
        for i, line in enumerate(self._lines):
            if line.key == key:
                return i
        raise CartLineNotFound(key.product_id, key.product_type.value)

    def _commit(self, lines: List[CartLine], line_set_changed: bool = False) -> CartSnapshot:
        self._lines = lines
        if self._persist() or line_set_changed:
            self.reconcile()
        return self.snapshot()

    # query

    @property
    def lines(self) -> List[CartLine]:
        with self._lock:
            return list(self._lines)

    def snapshot(self) -> CartSnapshot:
        with self._lock:
            return build_snapshot(self._lines, self.cache, self.policy, persistent=self.persistent)

    def reconcile(self) -> List[Future]:
        """Uruchamia fetch dla kazdej linii, ktorej produkt nie jest jeszcze w cache."""
        with self._lock:
            keys = [line.key for line in self._lines]

        # resolve() na kluczu w locie zwraca ten sam Future, nie robi drugiego fetcha
        return [
            self.cache.resolve(key)
            for key in dict.fromkeys(keys)
            if self.cache.state(key) is not ResolutionState.RESOLVED
        ]

    def wait_resolved(self, timeout: float) -> CartSnapshot:
        futures = self.reconcile()
        if futures:
            wait(futures, timeout=timeout)
        return self.snapshot()

    # magazyn

    def sync(self) -> CartSnapshot:
        """
        Wyrownanie z redis przy kazdym dostepie: zalegly zapis po awarii
        albo odczyt zmian zrobionych przez inny worker.
        """
        with self._lock:
            if not self.persistent:
                changed = self._persist()
            else:
                try:
                    stored = self.repo.load(self.user_id)
                except PersistenceUnavailable as e:
                    logger.warning(f"Cart store unavailable for user {self.user_id}, running in memory: {e}")
                    self.persistent = False
                    return self.snapshot()
                changed = stored != self._lines
                if changed:
                    logger.info(f"Cart of user {self.user_id} changed in store, reloading")
                    self._lines = stored

        if changed:
            self.reconcile()
        return self.snapshot()

    def flush(self) -> bool:
        """Ostatnia proba zapisu (np. przed usunieciem z rejestru), True gdy koszyk jest w redis."""
        with self._lock:
            if not self.persistent:
                self._persist()
            return self.persistent

    # commands

    def add_line(self, product_id: str, product_type: ProductType = ProductType.PRIMARY, quantity: int = 1) -> CartSnapshot:
        if quantity < 1:
            raise InvalidQuantity(quantity)

        key = LineKey(str(product_id), ProductType(product_type))
        with self._lock:
            lines = list(self._lines)
            try:
                i = self._index(key)
            except CartLineNotFound:
                logger.info(f"Adding {key.product_type.value} {key.product_id} x{quantity} to cart of user {self.user_id}")
                lines.append(CartLine(product_id=key.product_id, product_type=key.product_type, quantity=quantity))
                return self._commit(lines, line_set_changed=True)

            existing = lines[i]
            logger.info(
                f"Product {key.product_id} already in cart, quantity "
                f"{existing.quantity} -> {existing.quantity + quantity}"
            )
            lines[i] = existing.model_copy(update={"quantity": existing.quantity + quantity})
            return self._commit(lines)

    def set_quantity(self, key: LineKey, quantity: int) -> CartSnapshot:
        if quantity < 1:
            raise InvalidQuantity(quantity)

        with self._lock:
            i = self._index(key)
            lines = list(self._lines)
            lines[i] = lines[i].model_copy(update={"quantity": quantity})
            return self._commit(lines)

    def set_selected(self, key: LineKey, selected: bool) -> CartSnapshot:
        with self._lock:
            i = self._index(key)
            lines = list(self._lines)
            lines[i] = lines[i].model_copy(update={"selected": bool(selected)})
            return self._commit(lines)

    def select_all(self, selected: bool) -> CartSnapshot:
        with self._lock:
            lines = [line.model_copy(update={"selected": bool(selected)}) for line in self._lines]
            return self._commit(lines)

    def remove_line(self, key: LineKey) -> CartSnapshot:
        with self._lock:
            i = self._index(key)
            lines = list(self._lines)
            removed = lines.pop(i)
            logger.info(f"Removed {removed.product_id} from cart of user {self.user_id}")
            return self._commit(lines, line_set_changed=True)

    def remove_selected(self) -> CartSnapshot:
        with self._lock:
            lines = [line for line in self._lines if not line.selected]
            return self._commit(lines, line_set_changed=True)

    def remove_keys(self, keys) -> CartSnapshot:
        """Usuwa podane linie (np. po zlozeniu zamowienia), brakujace ignoruje."""
        wanted = {LineKey(k[0], ProductType(k[1])) for k in keys}
        with self._lock:
            lines = [line for line in self._lines if line.key not in wanted]
            return self._commit(lines, line_set_changed=True)

    def clear(self) -> CartSnapshot:
        with self._lock:
            logger.info(f"Clearing cart of user {self.user_id}")
            return self._commit([], line_set_changed=True)


class CartRegistry:
    """
    Silniki koszykow aktywnych klientow, wspolny cache produktow.
    Ograniczony LRU, zrodlem prawdy jest redis, silnik przy kazdym dostepie robi sync().
    """

    def __init__(
        self,
        repo: CartRepo,
        cache: ProductResolutionCache,
        policy: PricingPolicy | None = None,
        max_size: int = CART_REGISTRY_SIZE,
    ):
        self.repo = repo
        self.cache = cache
        self.policy = policy or PricingPolicy()
        self.max_size = max_size
        self._engines: "OrderedDict[int, CartPricingEngine]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)

    def get(self, user_id: int) -> CartPricingEngine:
        evicted: List[CartPricingEngine] = []
        with self._lock:
            engine = self._engines.get(user_id)
            if engine is not None:
                self._engines.move_to_end(user_id)
                created = False
            else:
                engine = CartPricingEngine(user_id, self.repo, self.cache, self.policy)
                self._engines[user_id] = engine
                created = True
                while len(self._engines) > self.max_size:
                    _, old = self._engines.popitem(last=False)
                    evicted.append(old)

        # io na redis poza lockiem rejestru
        if not created:
            engine.sync()
        for old in evicted:
            if not old.flush():
                logger.error(f"Cart of user {old.user_id} evicted while store is down, in-memory changes lost")
        return engine
