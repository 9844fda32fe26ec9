import asyncio
import logging
from typing import Dict, Iterable, List, NamedTuple, Optional

from shortener.config import settings
from shortener.exceptions import (
    AlreadyExistsError,
    DeleteQueueFullError,
    IDGenerationExhaustedError,
    ShortIDConflictError,
    ShortIDGenerationError,
    UnauthorizedError,
    URLConflictError,
    URLGoneError,
)
from shortener.logging_config import get_logger
from shortener.queue.models import DeleteRequest
from shortener.queue.strategies import QueueStrategy
from shortener.services.short_id_factory import ShortIDFactory
from shortener.services.short_id_strategies import ShortIDStrategy
from shortener.storage.strategies import URLStorageStrategy


class ShortenResult(NamedTuple):
    short_id: str
    existed: bool  # True when the URL already had a short ID


class URLService:
    """
    URL Service with dependency injection for storage, ID generation and queue.

    Creating a short URL is a small state machine:
    1. Reverse-lookup the URL; if it's known, return its ID ("already existed")
    2. Otherwise generate a candidate and try to save it, up to max_retries times:
       - saved: return it as new
       - storage says the URL got an ID meanwhile: return that ID ("already existed")
       - the candidate collides with another URL, or generation failed: try again
       - anything else: give up immediately
    3. Out of attempts: IDGenerationExhaustedError

    Step 1 is only a shortcut. Storage is the one place URL uniqueness is
    decided, so two concurrent requests for the same new URL still end up
    with one mapping.
    """

    def __init__(
        self,
        storage: URLStorageStrategy,
        short_id_strategy: Optional[ShortIDStrategy] = None,
        queue: Optional[QueueStrategy] = None,
        logger: Optional[logging.Logger] = None,
        max_retries: int = settings.max_retries
    ):
        """
        Initialize URL service with dependencies.

        Args:
            storage: Storage backend shared by all requests
            short_id_strategy: ID generator (default from factory/settings)
            queue: Delete queue (needed for request_delete)
            logger: Parent logger
            max_retries: Save attempts per URL before giving up
        """
        self.storage = storage
        # Use provided strategy or create default from factory
        self.short_id_strategy = short_id_strategy or ShortIDFactory.create_strategy()
        self.queue = queue
        self.logger = (logger or get_logger()).getChild("url_service")
        self.max_retries = max_retries

    def _generate_candidate(self) -> Optional[str]:
        try:
            return self.short_id_strategy.generate()
        except ShortIDGenerationError as e:
            self.logger.error("Error generating ID: %s", e)
            return None

    @staticmethod
    def _require_owner(owner_id: Optional[str]) -> str:
        if not owner_id:
            raise UnauthorizedError("Missing user identity")
        return owner_id

    def create_short_url(self, owner_id: str, original_url: str) -> ShortenResult:
        """Return the short ID for original_url, creating one if needed"""
        existing_id = self.storage.get_id_by_url(original_url)
        if existing_id is not None:
            return ShortenResult(existing_id, True)

        for attempt in range(1, self.max_retries + 1):
            candidate = self._generate_candidate()
            if candidate is None:
                continue

            try:
                self.storage.save_id(owner_id, candidate, original_url)
            except URLConflictError as e:
                # Another request stored this URL first
                return ShortenResult(e.existing_short_id, True)
            except ShortIDConflictError:
                self.logger.debug("Short ID collision on attempt %d: %s", attempt, candidate)
                continue

            self.logger.info("Created short ID %s for user %s", candidate, owner_id)
            return ShortenResult(candidate, False)

        self.logger.error("Failed to generate unique ID for %s after %d attempts", original_url, self.max_retries)
        raise IDGenerationExhaustedError(
            f"Could not generate unique short ID after {self.max_retries} attempts"
        )

    def create_short_urls_batch(self, owner_id: str, original_urls: List[str]) -> Dict[str, ShortenResult]:
        """
        Shorten many URLs with one storage batch write per attempt.

        Repeated URLs in the input share one result. Known URLs are reused.
        When the batch write hits a conflict, the unsaved URLs are looked
        up again (some may have been saved by the failed attempt or by
        someone else) and the rest get fresh candidates.

        Returns:
            Dict of original_url -> ShortenResult
        """
        results: Dict[str, ShortenResult] = {}
        proposed: Dict[str, str] = {}  # url -> our latest candidate for it
        pending = list(dict.fromkeys(original_urls))

        for attempt in range(1, self.max_retries + 1):
            if not pending:
                break

            retry: List[str] = []
            batch: Dict[str, str] = {}
            for url in pending:
                existing_id = self.storage.get_id_by_url(url)
                if existing_id is not None:
                    results[url] = ShortenResult(existing_id, proposed.get(url) != existing_id)
                    continue

                candidate = self._generate_candidate()
                if candidate is None or candidate in batch:
                    retry.append(url)
                    continue
                batch[candidate] = url
                proposed[url] = candidate

            if batch:
                try:
                    self.storage.save_batch(owner_id, batch)
                except AlreadyExistsError as e:
                    self.logger.debug("Batch conflict on attempt %d: %s", attempt, e)
                    retry.extend(batch.values())
                else:
                    for candidate, url in batch.items():
                        results[url] = ShortenResult(candidate, False)

            pending = retry

        if pending:
            raise IDGenerationExhaustedError(
                f"Could not generate unique short IDs for {len(pending)} URLs "
                f"after {self.max_retries} attempts"
            )

        self.logger.info("Shortened batch of %d URLs for user %s", len(results), owner_id)
        return results

    def get_original_url(self, short_id: str) -> Optional[str]:
        """
        Resolve a short ID for redirection.

        Returns:
            The original URL, or None if the ID is unknown

        Raises:
            URLGoneError: The link was deleted and deleted links are hidden
        """
        record = self.storage.get_record(short_id)
        if record is None:
            return None
        if record.deleted and self.storage.hide_deleted:
            raise URLGoneError()
        return record.original_url

    def get_user_urls(self, owner_id: str) -> Dict[str, str]:
        """All live short ID -> URL mappings of an owner"""
        return self.storage.get_user_urls(self._require_owner(owner_id))

    async def request_delete(self, owner_id: str, short_ids: Iterable[str]) -> None:
        """
        Queue a soft delete without waiting for it.

        Raises:
            UnauthorizedError: No owner identity
            DeleteQueueFullError: The queue refused the request
        """
        owner_id = self._require_owner(owner_id)
        short_ids = list(short_ids)
        if not short_ids:
            return
        if self.queue is None:
            raise RuntimeError("URLService was created without a delete queue")

        request = DeleteRequest(owner_id=owner_id, short_ids=short_ids)
        if not await self.queue.publish(settings.delete_queue_name, request):
            raise DeleteQueueFullError()
        self.logger.info("Queued delete of %d URLs for user %s", len(short_ids), owner_id)

    async def ping(self, timeout: float = settings.database_ping_timeout) -> bool:
        """Storage health check bounded by timeout seconds"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.storage.ping), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.error("Storage ping timed out after %.1fs", timeout)
            return False
