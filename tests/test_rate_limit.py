import asyncio

from factories import PASSWORD, auth_header, make_user
from src.itorero.routes.auth_api import login_guard
from src.itorero.utils.rate_limit import InMemoryRateLimitStore, RedisRateLimitStore, rate_limit_sensitive


def _seed(session_factory, fn):
    async def _run():
        async with session_factory() as s:
            return await fn(s)

    return asyncio.run(_run())


async def test_allows_up_to_the_limit_inside_the_window():
    store = InMemoryRateLimitStore()
    results = [await store.hit("1.2.3.4:anonymous", 100.0 + i, 60, 3) for i in range(4)]
    assert results == [True, True, True, False]


async def test_window_slides():
    store = InMemoryRateLimitStore()
    for i in range(3):
        assert await store.hit("k", 100.0 + i, 60, 3)
    assert not await store.hit("k", 150.0, 60, 3)
    # the first hit has left the window
    assert await store.hit("k", 160.5, 60, 3)


async def test_keys_are_independent_and_reset_clears():
    store = InMemoryRateLimitStore()
    assert await store.hit("a", 1.0, 60, 1)
    assert not await store.hit("a", 2.0, 60, 1)
    assert await store.hit("b", 2.0, 60, 1)

    await store.reset()
    assert await store.hit("a", 3.0, 60, 1)


async def test_idle_keys_are_dropped():
    store = InMemoryRateLimitStore()
    for i in range(5):
        await store.hit(f"10.0.0.{i}:anonymous", 1.0, 60, 5)
    assert len(store) == 5

    await store.hit("10.0.0.9:anonymous", 100.0, 60, 5)
    assert len(store) == 1


class _FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __getattr__(self, name):
        def queue(*args):
            self._ops.append((name, args))

        return queue

    async def execute(self):
        return [getattr(self._redis, f"_{name}")(*args) for name, args in self._ops]


class _FakeRedis:
    """Sorted sets in a dict; pipelines run their queued commands in one go."""

    def __init__(self):
        self.sets = {}

    def pipeline(self, transaction=True):
        return _FakePipeline(self)

    def _zremrangebyscore(self, key, lo, hi):
        members = self.sets.setdefault(key, {})
        for m in [m for m, score in members.items() if lo <= score <= hi]:
            del members[m]

    def _zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)

    def _zcard(self, key):
        return len(self.sets.get(key, {}))

    def _expire(self, key, seconds):
        return True

    async def zrem(self, key, member):
        self.sets.get(key, {}).pop(member, None)


async def test_redis_store_counts_and_adds_in_one_transaction():
    redis = _FakeRedis()
    store = RedisRateLimitStore(redis, prefix="t:")

    results = [await store.hit("k", 100.0 + i, 60, 2) for i in range(3)]

    assert results == [True, True, False]
    # the refused attempt is not left behind
    assert len(redis.sets["t:k"]) == 2
    assert await store.hit("k", 161.0, 60, 2)


def test_sensitive_route_returns_429(client):
    client.app.dependency_overrides[login_guard] = rate_limit_sensitive(window_seconds=60, max_requests=2)

    codes = [
        client.post("/api/auth/login", json={"identifier": "nobody", "password": "x"}).status_code
        for _ in range(3)
    ]
    assert codes == [401, 401, 429]


class _KeyRecorder(InMemoryRateLimitStore):
    def __init__(self):
        super().__init__()
        self.keys = []

    async def hit(self, key, now, window, limit):
        self.keys.append(key)
        return await super().hit(key, now, window, limit)


def test_account_routes_are_limited_per_user(client, session_factory):
    user = _seed(session_factory, lambda s: make_user(s, "changer"))
    headers = auth_header(client, "changer")
    store = _KeyRecorder()
    client.app.state.rate_limit_store = store

    resp = client.put(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "Newer#456"},
        headers=headers,
    )

    assert resp.status_code == 200, resp.text
    assert store.keys == [f"testclient:{user.id}"]
