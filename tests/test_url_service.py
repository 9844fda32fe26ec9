"""
Tests for URLService: dedup, collision retries, batches, deletes.
"""
import asyncio
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from shortener.exceptions import (
    DeleteQueueFullError,
    IDGenerationExhaustedError,
    PersistenceError,
    ShortIDGenerationError,
    UnauthorizedError,
    URLGoneError,
)
from shortener.queue.strategies import InMemoryQueue
from shortener.services.short_id_strategies import ShortIDStrategy
from shortener.services.url_service import ShortenResult, URLService
from shortener.storage.strategies import InMemoryURLStorage


class ScriptedStrategy(ShortIDStrategy):
    """Hands out a fixed sequence of IDs (or raises the exceptions in it)"""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def generate(self) -> str:
        self.calls += 1
        value = self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class FailingStorage(InMemoryURLStorage):
    def save_id(self, owner_id, short_id, original_url):
        raise PersistenceError("disk full")


class RacingStorage(InMemoryURLStorage):
    """Reverse lookup always misses, as if another request won in between"""

    def get_id_by_url(self, original_url):
        return None


class SlowStorage(InMemoryURLStorage):
    def ping(self):
        time.sleep(0.5)
        return True


@pytest.fixture
def memory_storage():
    return InMemoryURLStorage()


class TestCreateShortURL:
    """Test single URL shortening"""

    def test_new_url(self, memory_storage):
        """Test a new URL gets the generated ID"""
        service = URLService(memory_storage, ScriptedStrategy("abc123"))

        result = service.create_short_url("u1", "http://example.com")

        assert result == ShortenResult("abc123", False)
        assert memory_storage.get("abc123") == "http://example.com"
        assert memory_storage.get_record("abc123").owner_id == "u1"

    def test_known_url_returns_existing_id(self, memory_storage):
        """Test repeating a URL returns the same ID without generating"""
        strategy = ScriptedStrategy("abc123")
        service = URLService(memory_storage, strategy)

        service.create_short_url("u1", "http://example.com")
        result = service.create_short_url("u2", "http://example.com")

        assert result == ShortenResult("abc123", True)
        assert strategy.calls == 1

    def test_retries_on_short_id_collision(self, memory_storage):
        """Test a taken candidate is replaced by a fresh one"""
        memory_storage.save_id("u0", "taken", "http://other.example")
        strategy = ScriptedStrategy("taken", "fresh")
        service = URLService(memory_storage, strategy)

        result = service.create_short_url("u1", "http://example.com")

        assert result == ShortenResult("fresh", False)
        assert strategy.calls == 2
        assert memory_storage.get("taken") == "http://other.example"

    def test_retries_on_generation_failure(self, memory_storage):
        """Test a failed generation consumes an attempt and carries on"""
        strategy = ScriptedStrategy(ShortIDGenerationError("no entropy"), "fresh")
        service = URLService(memory_storage, strategy)

        result = service.create_short_url("u1", "http://example.com")

        assert result == ShortenResult("fresh", False)

    def test_exhausts_retries(self, memory_storage):
        """Test giving up after max_retries collisions"""
        memory_storage.save_id("u0", "taken", "http://other.example")
        strategy = ScriptedStrategy("taken", "taken", "taken", "unused")
        service = URLService(memory_storage, strategy, max_retries=3)

        with pytest.raises(IDGenerationExhaustedError):
            service.create_short_url("u1", "http://example.com")

        assert strategy.calls == 3
        assert memory_storage.get_id_by_url("http://example.com") is None

    def test_exhausts_retries_on_generation_failures(self, memory_storage):
        """Test repeated generation failures also end in exhaustion"""
        strategy = ScriptedStrategy(*[ShortIDGenerationError("no entropy")] * 2)
        service = URLService(memory_storage, strategy, max_retries=2)

        with pytest.raises(IDGenerationExhaustedError):
            service.create_short_url("u1", "http://example.com")

    def test_other_errors_abort(self):
        """Test a storage failure is not retried"""
        strategy = ScriptedStrategy("abc123", "def456")
        service = URLService(FailingStorage(), strategy)

        with pytest.raises(PersistenceError):
            service.create_short_url("u1", "http://example.com")

        assert strategy.calls == 1

    def test_lost_race_returns_winner(self):
        """Test storage reporting the URL as taken yields the stored ID"""
        storage = RacingStorage()
        storage.save_id("u0", "winner", "http://example.com")
        service = URLService(storage, ScriptedStrategy("loser"))

        result = service.create_short_url("u1", "http://example.com")

        assert result == ShortenResult("winner", True)
        assert storage.get("loser") is None


@pytest.mark.parametrize("kind,requests", [("memory", 100), ("file", 100), ("database", 20)])
def test_concurrent_creates_share_one_id(make_storage, kind, requests):
    """Test simultaneous requests for one URL end with a single mapping"""
    storage = make_storage(kind)
    service = URLService(storage)
    url = "http://example.com/popular"

    with ThreadPoolExecutor(max_workers=16) as executor:
        results = list(executor.map(
            lambda i: service.create_short_url(f"u{i}", url), range(requests)
        ))

    assert len({result.short_id for result in results}) == 1
    assert sum(not result.existed for result in results) == 1
    assert storage.get_id_by_url(url) == results[0].short_id
    assert sum(len(storage.get_user_urls(f"u{i}")) for i in range(requests)) == 1


class TestCreateBatch:
    """Test batch shortening"""

    def test_batch_of_new_urls(self, memory_storage):
        """Test each URL gets its own ID and repeats share one"""
        strategy = ScriptedStrategy("id1", "id2")
        service = URLService(memory_storage, strategy)

        results = service.create_short_urls_batch(
            "u1", ["http://a.example", "http://b.example", "http://a.example"]
        )

        assert results == {
            "http://a.example": ShortenResult("id1", False),
            "http://b.example": ShortenResult("id2", False),
        }
        assert memory_storage.get_user_urls("u1") == {"id1": "http://a.example", "id2": "http://b.example"}

    def test_batch_reuses_known_urls(self, memory_storage):
        """Test URLs already stored are reported as existing"""
        memory_storage.save_id("u0", "old", "http://a.example")
        service = URLService(memory_storage, ScriptedStrategy("id2"))

        results = service.create_short_urls_batch("u1", ["http://a.example", "http://b.example"])

        assert results["http://a.example"] == ShortenResult("old", True)
        assert results["http://b.example"] == ShortenResult("id2", False)

    def test_batch_retries_after_conflict(self, memory_storage):
        """Test pairs saved before a conflict are kept and the rest retried"""
        memory_storage.save_id("u0", "taken", "http://other.example")
        strategy = ScriptedStrategy("id1", "taken", "id3")
        service = URLService(memory_storage, strategy)

        results = service.create_short_urls_batch("u1", ["http://a.example", "http://b.example"])

        assert results == {
            "http://a.example": ShortenResult("id1", False),
            "http://b.example": ShortenResult("id3", False),
        }

    def test_database_batch_retries_after_conflict(self, make_storage):
        """Test a rolled back batch gets fresh candidates for every URL"""
        storage = make_storage("database")
        storage.save_id("u0", "taken", "http://other.example")
        service = URLService(storage, ScriptedStrategy("id1", "taken", "id3", "id4"))

        results = service.create_short_urls_batch("u1", ["http://a.example", "http://b.example"])

        assert results == {
            "http://a.example": ShortenResult("id3", False),
            "http://b.example": ShortenResult("id4", False),
        }

    def test_duplicate_candidates_in_one_batch(self, memory_storage):
        """Test the generator repeating itself within a batch"""
        service = URLService(memory_storage, ScriptedStrategy("same", "same", "other"))

        results = service.create_short_urls_batch("u1", ["http://a.example", "http://b.example"])

        assert results["http://a.example"] == ShortenResult("same", False)
        assert results["http://b.example"] == ShortenResult("other", False)

    def test_batch_exhausts_retries(self, memory_storage):
        """Test a batch that never finds free IDs"""
        memory_storage.save_id("u0", "taken", "http://other.example")
        service = URLService(memory_storage, ScriptedStrategy("taken", "taken"), max_retries=2)

        with pytest.raises(IDGenerationExhaustedError):
            service.create_short_urls_batch("u1", ["http://a.example"])

    def test_empty_batch(self, memory_storage):
        """Test an empty batch returns nothing"""
        service = URLService(memory_storage, ScriptedStrategy())
        assert service.create_short_urls_batch("u1", []) == {}


class TestLookups:
    """Test resolving and listing"""

    def test_get_original_url(self, memory_storage):
        """Test resolving a stored ID"""
        memory_storage.save_id("u1", "abc123", "http://example.com")
        service = URLService(memory_storage)

        assert service.get_original_url("abc123") == "http://example.com"
        assert service.get_original_url("missing") is None

    def test_deleted_url_is_gone(self, memory_storage):
        """Test a tombstoned ID raises URLGoneError"""
        memory_storage.save_id("u1", "abc123", "http://example.com")
        memory_storage.batch_delete("u1", ["abc123"])
        service = URLService(memory_storage)

        with pytest.raises(URLGoneError) as exc_info:
            service.get_original_url("abc123")
        assert exc_info.value.status_code == 410

    def test_deleted_url_resolves_when_filter_is_off(self):
        """Test hide_deleted=False keeps deleted IDs redirecting"""
        storage = InMemoryURLStorage(hide_deleted=False)
        storage.save_id("u1", "abc123", "http://example.com")
        storage.batch_delete("u1", ["abc123"])

        assert URLService(storage).get_original_url("abc123") == "http://example.com"

    def test_user_urls_need_owner(self, memory_storage):
        """Test listing without identity"""
        service = URLService(memory_storage)

        with pytest.raises(UnauthorizedError):
            service.get_user_urls("")

    def test_user_urls(self, memory_storage):
        """Test listing the caller's links"""
        memory_storage.save_id("u1", "abc123", "http://example.com")
        service = URLService(memory_storage)

        assert service.get_user_urls("u1") == {"abc123": "http://example.com"}


class TestRequestDelete:
    """Test queueing deletes"""

    def test_publishes_request(self, memory_storage):
        """Test a request lands on the queue"""
        queue = InMemoryQueue(capacity=5)
        service = URLService(memory_storage, queue=queue)

        async def scenario():
            await service.request_delete("u1", ["abc123", "def456"])
            return await queue.consume("url_deletes", batch_size=5, block_time=10)

        messages = asyncio.run(scenario())

        assert len(messages) == 1
        assert messages[0].owner_id == "u1"
        assert messages[0].short_ids == ["abc123", "def456"]

    def test_full_queue(self, memory_storage):
        """Test a full queue turns into DeleteQueueFullError"""
        service = URLService(memory_storage, queue=InMemoryQueue(capacity=1))

        async def scenario():
            await service.request_delete("u1", ["abc123"])
            await service.request_delete("u1", ["def456"])

        with pytest.raises(DeleteQueueFullError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.status_code == 503

    def test_needs_owner(self, memory_storage):
        """Test deleting without identity"""
        service = URLService(memory_storage, queue=InMemoryQueue())

        with pytest.raises(UnauthorizedError):
            asyncio.run(service.request_delete("", ["abc123"]))

    def test_empty_id_list_publishes_nothing(self, memory_storage):
        """Test nothing is queued for an empty request"""
        queue = InMemoryQueue()
        service = URLService(memory_storage, queue=queue)

        async def scenario():
            await service.request_delete("u1", [])
            return await queue.get_queue_length("url_deletes")

        assert asyncio.run(scenario()) == 0

    def test_missing_queue(self, memory_storage):
        """Test a service without a queue can't delete"""
        service = URLService(memory_storage)

        with pytest.raises(RuntimeError):
            asyncio.run(service.request_delete("u1", ["abc123"]))


class TestPing:
    """Test health checks"""

    def test_ping(self, memory_storage):
        """Test a healthy backend"""
        assert asyncio.run(URLService(memory_storage).ping()) is True

    def test_ping_timeout(self):
        """Test a slow backend counts as unhealthy"""
        service = URLService(SlowStorage())

        assert asyncio.run(service.ping(timeout=0.05)) is False
