"""
Shared fixtures for Storefront service tests.
"""

import re
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.config import get_config
from service_storefront.app.auth import create_access_token
from service_storefront.app.main import StorefrontService

JWT_SECRET = "test-secret"


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _glob_to_regex(pattern: str) -> "re.Pattern":
    # Redis glob: * ? [..] with backslash escapes
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class FakeRedis:
    """In-process double for ``redis.asyncio.Redis`` covering the cache commands.

    Set ``down`` to make every command fail the way an unreachable server does.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self.down = False
        self.closed = False
        self.commands: List[str] = []
        self.delete_batches: List[int] = []
        self.scan_counts: List[Optional[int]] = []

    def _command(self, name: str) -> None:
        self.commands.append(name)
        if self.down:
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def _live(self, key: str) -> Optional[bytes]:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    async def ping(self) -> bool:
        self._command("ping")
        return True

    async def get(self, key: str) -> Optional[bytes]:
        self._command("get")
        return self._live(key)

    async def set(self, key: str, value, ex: Optional[int] = None) -> bool:
        self._command("set")
        if isinstance(value, str):
            value = value.encode("utf-8")
        self.data[key] = (bytes(value), self.clock() + ex if ex else None)
        return True

    async def delete(self, *keys) -> int:
        self._command("delete")
        self.delete_batches.append(len(keys))
        removed = 0
        for key in keys:
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            if self._live(key) is not None:
                del self.data[key]
                removed += 1
        return removed

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        self._command("scan")
        self.scan_counts.append(count)
        regex = _glob_to_regex(match or "*")
        for key in list(self.data):
            if self._live(key) is not None and regex.match(key):
                yield key.encode("utf-8")

    async def aclose(self) -> None:
        self.closed = True

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return sorted(k for k in self.data if k.startswith(prefix) and self._live(k) is not None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def config():
    return get_config(
        "storefront",
        8000,
        env="test",
        jwt_secret=JWT_SECRET,
        postgres_dsn=None,
        cache_reconnect_base_delay=0.01,
        cache_reconnect_max_delay=0.02,
    )


@pytest_asyncio.fixture
async def service(config, fake_redis):
    svc = StorefrontService(config, redis_client=fake_redis)
    await svc.start()
    yield svc
    await svc.stop()


@pytest_asyncio.fixture
async def client(service):
    transport = httpx.ASGITransport(app=service.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://storefront.test") as http:
        yield http


@pytest_asyncio.fixture
async def admin(service):
    return await service.stores["users"].save({
        "id": "admin-1",
        "name": "Admin",
        "email": "admin@example.com",
        "is_admin": True,
        "addresses": [],
    })


@pytest_asyncio.fixture
async def customer(service):
    return await service.stores["users"].save({
        "id": "user-1",
        "name": "Wanjiru",
        "email": "wanjiru@example.com",
        "is_admin": False,
        "addresses": [],
    })


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token(user_id, JWT_SECRET)}"}
    return _headers


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(admin['id'], JWT_SECRET)}"}


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {create_access_token(customer['id'], JWT_SECRET)}"}


def product_document(**overrides):
    document = {
        "name": "RTX 4070 Super",
        "image": "/images/rtx4070.jpg",
        "images": [],
        "description": "12GB graphics card",
        "brand": "NVIDIA",
        "category": "Graphics Cards",
        "price": 95000,
        "count_in_stock": 10,
        "rating": 0,
        "num_reviews": 0,
        "reviews": [],
        "specifications": {},
        "offer": {"enabled": False, "type": "percentage", "amount": 0},
    }
    document.update(overrides)
    return document


@pytest.fixture
def make_product():
    return product_document


@pytest_asyncio.fixture
async def product(service):
    return await service.stores["products"].save(product_document(id="prod-1"))
