import asyncio
import logging
from datetime import timedelta
from functools import partial
from typing import List, Optional, Tuple

from prometheus_client import Counter, Histogram

from shortlink_app.cache.keys import dedup_key
from shortlink_app.cache.strategies import CacheStrategy, NullCache
from shortlink_app.config import settings
from shortlink_app.events.models import ClickEvent
from shortlink_app.events.strategies import EventSink, NullEventSink
from shortlink_app.exceptions import (
    CacheError,
    ConstraintKind,
    CreationExhaustedError,
    DedupCheckError,
    EventPublishError,
    GenerationExhaustedError,
    NotFoundError,
    PersistError,
    RepositoryError,
    ShortlinkError,
    UniqueViolation,
    UnsafeURLError,
    ValidationError,
)
from shortlink_app.hit_processor.click_recorder import ClickRecorder
from shortlink_app.schemas.url import URLCreate, URLEntity, URLResponse, URLUpdate, utcnow
from shortlink_app.services.short_code_factory import ShortCodeFactory
from shortlink_app.services.short_code_strategies import ShortCodeStrategy
from shortlink_app.services.validator import DefaultURLValidator, URLValidator
from shortlink_app.storage.strategies import URLRepository

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100

# Metrics

URL_CREATE_REQUESTS_TOTAL = Counter(
    "url_create_requests_total",
    "Create requests received, cached and reused ones included"
)
URL_CREATE_NEW_TOTAL = Counter(
    "url_create_new_total",
    "Create requests that inserted a new short code"
)
URL_DUPLICATES_PREVENTED_TOTAL = Counter(
    "url_duplicates_prevented_total",
    "Create requests answered with the owner's existing short code",
    ["source"]
)
URL_CREATE_ERRORS_TOTAL = Counter(
    "url_create_errors_total",
    "Create requests that ended in an error",
    ["error"]
)
SHORT_CODE_COLLISIONS_TOTAL = Counter(
    "url_short_code_collisions_total",
    "Inserts rejected because the short code was already taken"
)
CLICKS_RECORDED_TOTAL = Counter(
    "url_clicks_recorded_total",
    "Detached click jobs by outcome",
    ["status"]
)
URL_CREATE_DURATION = Histogram(
    "url_create_duration_seconds",
    "Time taken to create or reuse a short URL",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)


class URLService:
    """
    Creation / deduplication / resolution pipeline.

    Collaborators are injected; the service itself keeps no state between
    calls, so one instance may serve any number of concurrent requests.

    Ordering rules:
    - an owner resubmitting a URL gets the existing live short code back;
      dedup always runs before a new code is generated
    - the store's uniqueness constraints are the only concurrency control,
      collision retry and the fallback read handle the losing side of a race
    - the cache is consulted and refreshed, never trusted for a decision
    """

    def __init__(
        self,
        repository: URLRepository,
        cache: Optional[CacheStrategy] = None,
        events: Optional[EventSink] = None,
        click_recorder: Optional[ClickRecorder] = None,
        validator: Optional[URLValidator] = None,
        short_code_strategy: Optional[ShortCodeStrategy] = None,
        base_url: Optional[str] = None,
        max_create_attempts: Optional[int] = None,
        uniqueness_probes: Optional[int] = None,
        response_cache_ttl: Optional[int] = None,
    ):
        """
        Initialize URL service with dependencies.

        Args:
            repository: Persistent store (source of truth)
            cache: Entity + response cache (defaults to NullCache)
            events: Event sink (defaults to NullEventSink)
            click_recorder: Pool for detached click recording
            validator: URL policy (defaults to DefaultURLValidator)
            short_code_strategy: Code generator (defaults to the factory's)
        """
        self.repository = repository
        self.cache = cache or NullCache()
        self.events = events or NullEventSink()
        self.click_recorder = click_recorder
        self.validator = validator or DefaultURLValidator(settings.blacklisted_domains)
        self.short_code_strategy = short_code_strategy or ShortCodeFactory.create_strategy()
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.max_create_attempts = max_create_attempts or settings.max_create_attempts
        self.uniqueness_probes = (
            settings.uniqueness_probes if uniqueness_probes is None else uniqueness_probes
        )
        self.response_cache_ttl = response_cache_ttl or settings.response_cache_ttl

    # Creation

    async def create_url(self, request: URLCreate) -> URLResponse:
        """
        Create (or find) the short URL for (request.url, request.owner_id).

        Flow:
        1. Response cache probe - a hit skips everything, validation included
        2. Validate, then safety check
        3. Owner-scoped dedup lookup in the store
        4. Existing live entity -> reuse it; otherwise create with retry
        5. Cache the response under the dedup key

        Raises:
            ValidationError, UnsafeURLError: Client errors
            DedupCheckError, PersistError: Store failures
            CreationExhaustedError: Retry budget spent, no concurrent winner
        """
        URL_CREATE_REQUESTS_TOTAL.inc()
        with URL_CREATE_DURATION.time():
            try:
                return await self._create_or_reuse(request)
            except ShortlinkError as e:
                URL_CREATE_ERRORS_TOTAL.labels(error=type(e).__name__).inc()
                raise

    async def _create_or_reuse(self, request: URLCreate) -> URLResponse:
        key = dedup_key(request.url, request.owner_id)

        cached = await self._cached_response(key)
        if cached is not None:
            logger.debug("Returning cached response for owner %s (%s)", request.owner_id, cached.short_code)
            URL_DUPLICATES_PREVENTED_TOTAL.labels(source="response_cache").inc()
            return cached

        self.validator.validate(request.url)

        if not self._is_safe(request.url):
            raise UnsafeURLError("URL is not safe")

        existing = self._find_existing(request.url, request.owner_id)
        if existing is not None:
            logger.info(
                "Found existing URL for owner %s, returning short code %s",
                request.owner_id, existing.short_code
            )
            URL_DUPLICATES_PREVENTED_TOTAL.labels(source="store").inc()
            response = self._build_response(existing)
        else:
            logger.info("No existing URL for owner %s, creating a new one", request.owner_id)
            response = await self._create_with_retry(request)

        try:
            await self.cache.set_response(key, response, ttl=self.response_cache_ttl)
        except CacheError as e:
            logger.warning("Failed to cache response %s: %s", key, e)

        return response

    async def _cached_response(self, key: str) -> Optional[URLResponse]:
        try:
            return await self.cache.get_response(key)
        except CacheError as e:
            logger.warning("Response cache read failed for %s: %s", key, e)
            return None

    def _is_safe(self, url: str) -> bool:
        try:
            return bool(self.validator.is_safe(url))
        except Exception:
            # A broken reputation check must not let the URL through
            logger.exception("Failed to check URL safety")
            return False

    def _find_existing(self, original_url: str, owner_id: int) -> Optional[URLEntity]:
        try:
            return self.repository.get_by_owner_and_url(original_url, owner_id)
        except RepositoryError as e:
            logger.error("Failed to check existing URL for owner %s: %s", owner_id, e)
            raise DedupCheckError(f"cannot verify existing URLs: {e}") from e

    async def _create_with_retry(self, request: URLCreate) -> URLResponse:
        expires_at = None
        if request.expires_in_seconds is not None and request.expires_in_seconds > 0:
            expires_at = utcnow() + timedelta(seconds=request.expires_in_seconds)
        metadata = dict(request.metadata) if request.metadata else None

        for attempt in range(1, self.max_create_attempts + 1):
            try:
                short_code = self._generate_candidate()
            except GenerationExhaustedError as e:
                logger.warning("Attempt %d/%d: %s", attempt, self.max_create_attempts, e)
                continue

            candidate = URLEntity(
                short_code=short_code,
                original_url=request.url,
                owner_id=request.owner_id,
                expires_at=expires_at,
                url_metadata=metadata,
            )

            try:
                created = self.repository.create(candidate)
            except UniqueViolation as e:
                if e.kind == ConstraintKind.SHORT_CODE:
                    SHORT_CODE_COLLISIONS_TOTAL.inc()
                    logger.warning(
                        "Duplicate short code %s, retrying (attempt %d/%d)",
                        short_code, attempt, self.max_create_attempts
                    )
                    continue

                # Another caller committed the same (owner, url) first
                logger.info("Concurrent create detected for owner %s, reading the winner", request.owner_id)
                winner = self._find_existing(request.url, request.owner_id)
                if winner is not None:
                    URL_DUPLICATES_PREVENTED_TOTAL.labels(source="concurrent_create").inc()
                    return self._build_response(winner)
                raise PersistError(f"dedup key conflict without a live winner: {e}") from e
            except RepositoryError as e:
                raise PersistError(f"failed to create URL on attempt {attempt}: {e}") from e

            logger.info(
                "Created URL %s for owner %s (attempt %d)",
                created.short_code, created.owner_id, attempt
            )
            URL_CREATE_NEW_TOTAL.inc()
            await self._after_create(created)
            return self._build_response(created)

        logger.warning(
            "All %d create attempts failed for owner %s, checking for a concurrent winner",
            self.max_create_attempts, request.owner_id
        )
        winner = self._find_existing(request.url, request.owner_id)
        if winner is not None:
            logger.info("Found existing URL %s during fallback", winner.short_code)
            URL_DUPLICATES_PREVENTED_TOTAL.labels(source="concurrent_create").inc()
            return self._build_response(winner)

        raise CreationExhaustedError(
            f"failed to create URL after {self.max_create_attempts} attempts"
        )

    def _generate_candidate(self) -> str:
        """
        Draw a code, optionally probing the store to skip taken ones.

        Probes are advisory; the insert is the authoritative check.
        """
        if self.uniqueness_probes <= 0:
            return self.short_code_strategy.generate()

        for probe in range(1, self.uniqueness_probes + 1):
            short_code = self.short_code_strategy.generate()
            try:
                taken = self.repository.get_by_short_code(short_code) is not None
            except RepositoryError as e:
                logger.warning("Uniqueness probe failed for %s, letting the insert decide: %s", short_code, e)
                return short_code
            if not taken:
                return short_code
            logger.debug("Probe %d: short code %s already taken", probe, short_code)

        raise GenerationExhaustedError(
            f"no free short code after {self.uniqueness_probes} probes"
        )

    async def _after_create(self, entity: URLEntity):
        try:
            await self.cache.set(entity)
        except CacheError as e:
            logger.warning("Failed to cache URL %s: %s", entity.short_code, e)

        try:
            await self.events.publish_created(entity)
        except EventPublishError as e:
            logger.error("Failed to publish URL created event for %s: %s", entity.short_code, e)

    def _build_response(self, entity: URLEntity) -> URLResponse:
        return URLResponse(
            short_code=entity.short_code,
            short_url=f"{self.base_url}/{entity.short_code}",
            original_url=entity.original_url,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
            click_count=entity.click_count,
        )

    # Resolution

    async def _resolve(self, short_code: str) -> Optional[URLEntity]:
        """
        Entity cache read-through, then the liveness check.

        Cache failures fall through to the store; store failures propagate.
        """
        entity = None
        try:
            entity = await self.cache.get(short_code)
        except CacheError as e:
            logger.warning("Failed to get URL %s from cache: %s", short_code, e)

        from_store = entity is None
        if from_store:
            entity = self.repository.get_by_short_code(short_code)
            if entity is None:
                return None

        if not entity.is_live():
            logger.info("URL %s is inactive, deleted or expired", short_code)
            return None

        if from_store:
            try:
                await self.cache.set(entity)
            except CacheError as e:
                logger.warning("Failed to cache URL %s: %s", short_code, e)

        return entity

    async def get_url(self, short_code: str) -> Optional[URLResponse]:
        """Response for a live short code, or None"""
        entity = await self._resolve(short_code)
        return self._build_response(entity) if entity else None

    async def redirect_and_record_click(
        self,
        short_code: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> Optional[str]:
        """
        Original URL for a live short code, or None.

        The click is recorded after this returns, by the click recorder.
        """
        entity = await self._resolve(short_code)
        if entity is None:
            return None

        click = ClickEvent(
            short_code=short_code,
            ip_address=ip_address,
            user_agent=user_agent,
            referrer=referrer,
        )
        if self.click_recorder is not None:
            self.click_recorder.submit(partial(self._record_click, entity, click))
        else:
            logger.warning("No click recorder configured, click on %s not recorded", short_code)

        return entity.original_url

    async def _record_click(self, entity: URLEntity, click: ClickEvent):
        """
        Detached: failures are only logged.

        The cached entity is refreshed only after a successful increment. A
        URL deleted between the redirect and this job is evicted instead, so
        the snapshot taken at redirect time never goes back into the cache.
        """
        incremented = False
        try:
            # Off the event loop so the job timeout can fire
            await asyncio.to_thread(self.repository.increment_click_count, entity.short_code)
            incremented = True
        except NotFoundError:
            logger.info("URL %s is no longer live, click not counted", entity.short_code)
            CLICKS_RECORDED_TOTAL.labels(status="not_live").inc()
            try:
                await self.cache.delete(entity.short_code)
            except CacheError as e:
                logger.warning("Failed to evict URL %s from cache: %s", entity.short_code, e)
            return
        except RepositoryError as e:
            logger.error("Failed to increment click count for %s: %s", entity.short_code, e)

        CLICKS_RECORDED_TOTAL.labels(status="recorded" if incremented else "failed").inc()

        try:
            await self.events.publish_clicked(click)
        except EventPublishError as e:
            logger.error("Failed to publish URL clicked event for %s: %s", entity.short_code, e)

        if not incremented:
            return

        refreshed = entity.model_copy(update={"click_count": entity.click_count + 1})
        try:
            await self.cache.set(refreshed)
        except CacheError as e:
            logger.warning("Failed to refresh cached click count for %s: %s", entity.short_code, e)

    # Management

    async def delete_url(self, short_code: str) -> None:
        """
        Soft delete a live URL and evict it from the entity cache.

        The response cache is left alone, so a create for the same
        (owner, url) can still return the deleted code until its TTL ends.

        Raises:
            NotFoundError: Unknown or already inactive code
        """
        self.repository.soft_delete(short_code)
        logger.info("Deleted URL %s", short_code)

        try:
            await self.cache.delete(short_code)
        except CacheError as e:
            logger.warning("Failed to delete URL %s from cache: %s", short_code, e)

    async def update_url(self, short_code: str, update: URLUpdate) -> URLResponse:
        """
        Change expiry and/or metadata of a live URL.

        Raises:
            NotFoundError: Unknown or non-live code
        """
        entity = self.repository.get_by_short_code(short_code)
        if entity is None or not entity.is_live():
            raise NotFoundError(f"URL {short_code} not found")

        changes = {}
        if update.expires_in_seconds is not None:
            changes["expires_at"] = (
                utcnow() + timedelta(seconds=update.expires_in_seconds)
                if update.expires_in_seconds > 0 else None
            )
        if update.metadata is not None:
            changes["url_metadata"] = dict(update.metadata)

        if not changes:
            return self._build_response(entity)

        updated = self.repository.update(entity.model_copy(update=changes))
        changed_fields = ["metadata" if name == "url_metadata" else name for name in changes]

        try:
            await self.cache.delete(short_code)
            await self.cache.delete_response(dedup_key(updated.original_url, updated.owner_id))
        except CacheError as e:
            logger.warning("Failed to evict updated URL %s from cache: %s", short_code, e)

        try:
            await self.events.publish_updated(updated, changed_fields)
        except EventPublishError as e:
            logger.error("Failed to publish URL updated event for %s: %s", short_code, e)

        return self._build_response(updated)

    async def list_urls(self, owner_id: int, limit: int = 10, offset: int = 0) -> List[URLResponse]:
        """Live URLs of an owner, newest first"""
        limit = max(1, min(MAX_LIST_LIMIT, limit))
        offset = max(0, offset)
        entities = self.repository.list_by_owner(owner_id, limit, offset)
        return [self._build_response(entity) for entity in entities]

    def validate_url(self, url: str) -> Tuple[bool, Optional[str]]:
        """Run validation and the safety check without persisting anything"""
        try:
            self.validator.validate(url)
        except ValidationError as e:
            return False, str(e)
        if not self._is_safe(url):
            return False, "URL is not safe"
        return True, None
