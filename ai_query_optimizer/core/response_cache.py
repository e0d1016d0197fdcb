"""
Response cache for model answers.

Stores answers keyed by normalized query plus a context fingerprint.
Near-duplicate phrasings share a slot. Entries expire after a configured
duration; the cache evicts its oldest fifth when full, and a background
sweeper removes expired entries periodically.
"""

import hashlib
import json
import math
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from .similarity import normalize_query, word_set_similarity

logger = structlog.stdlib.get_logger()

DEFAULT_CACHE_DURATION_MS = 60 * 60 * 1000
DEFAULT_MAX_SIZE = 100
DEFAULT_CLEANUP_INTERVAL_MS = 15 * 60 * 1000
DEFAULT_SIMILARITY_THRESHOLD = 0.8

EVICTION_FRACTION = 0.2
SWEEP_OCCUPANCY_THRESHOLD = 0.8

# Answers to these are tied to the moment or to the asking user
_UNCACHEABLE_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"dzisiaj|dziś|teraz|aktualnie|obecnie|w tym momencie",
    r"\btoday\b|\bright now\b|\bnow\b|\bcurrently\b",
    r"real.?time|na żywo|\bonline\b|streaming",
    r"\bmój\b|\bmoje\b|\bmoja\b|\bmoich\b|dla mnie",
    r"\bmy\b|\bfor me\b|\bmine\b",
))


@dataclass(frozen=True)
class CacheEntryMetadata:
    """What was asked when an entry was written."""
    query: str  # Truncated original query, for debugging
    normalized_query: str
    context_fingerprint: str
    estimated_cost: float = 0.0


@dataclass
class CacheEntry:
    """One cached model response."""
    key: str
    response: str
    created_at: float  # Epoch seconds
    metadata: CacheEntryMetadata

    def age_ms(self, now: float) -> float:
        return (now - self.created_at) * 1000

    def is_expired(self, now: float, max_age_ms: float) -> bool:
        return self.age_ms(now) > max_age_ms


@dataclass
class CacheStats:
    """Running counters for cache effectiveness."""
    hits: int = 0
    misses: int = 0
    total_saved: float = 0.0
    automatic_cleanups: int = 0
    last_cleanup: float = field(default_factory=time.time)

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests * 100


def hash_text(text: str, length: int = 16) -> str:
    """Short stable hash of a string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]


def generate_context_fingerprint(context_data: Optional[Mapping[str, Any]]) -> str:
    """Fingerprint the shape of a business-data snapshot.

    Built from the summary timestamp, the sizes of the main collections and
    the sorted top-level keys, so a refreshed snapshot gets a new fingerprint.
    """
    if not context_data:
        return "no_context"

    def size(key: str) -> Optional[int]:
        value = context_data.get(key)
        return len(value) if isinstance(value, (list, tuple, dict)) else None

    summary = context_data.get("summary")
    key_data = {
        "summaryTimestamp": summary.get("timestamp") if isinstance(summary, Mapping) else None,
        "inventoryCount": size("inventory"),
        "recipesCount": size("recipes"),
        "ordersCount": size("orders"),
        "dataKeys": sorted(str(key) for key in context_data),
    }
    return hash_text(json.dumps(key_data, sort_keys=True, default=str), length=12)


def should_cache(query: str) -> bool:
    """Whether an answer to ``query`` can be reused across users and time.

    Queries about "now" or about the asking user are never cached.
    """
    text = (query or "").lower()
    return not any(pattern.search(text) for pattern in _UNCACHEABLE_PATTERNS)


def format_cache_age(age_ms: float) -> str:
    """Human-readable freshness note appended to cached answers."""
    minutes = int(age_ms // 60000)
    if minutes < 1:
        return "_served from cache, less than a minute old_"
    if minutes < 60:
        return f"_served from cache, {minutes} min old_"
    return f"_served from cache, {minutes // 60}h old_"


class ResponseCache:
    """Bounded, expiring cache of model responses.

    All map access goes through ``_lock``; the background sweeper takes the
    same lock and never runs re-entrantly. Concurrent misses on one key are
    not coalesced: each caller invokes its own ``api_call`` and the last
    write wins.
    """

    def __init__(
        self,
        cache_duration_ms: float = DEFAULT_CACHE_DURATION_MS,
        max_size: int = DEFAULT_MAX_SIZE,
        cleanup_interval_ms: float = DEFAULT_CLEANUP_INTERVAL_MS,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        clock: Callable[[], float] = time.time,
        auto_cleanup: bool = True,
    ):
        """Initialize an empty cache.

        Args:
            cache_duration_ms: Maximum entry age before it is stale
            max_size: Maximum number of entries
            cleanup_interval_ms: Period of the background sweep
            similarity_threshold: Word-set similarity for near-duplicate reuse
            clock: Source of epoch seconds, injectable for tests
            auto_cleanup: Start the background sweep on first use

        Raises:
            ValueError: If any size or duration is not positive
        """
        _validate(cache_duration_ms, max_size, cleanup_interval_ms, similarity_threshold)
        self.cache_duration_ms = cache_duration_ms
        self.max_size = max_size
        self.cleanup_interval_ms = cleanup_interval_ms
        self.similarity_threshold = similarity_threshold
        self.auto_cleanup = auto_cleanup
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._sweeping = False
        self._stats = CacheStats(last_cleanup=clock())
        self._sweeper: Optional[threading.Thread] = None
        self._stop_sweeper = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_cached_or_fetch(
        self,
        query: str,
        context_fingerprint: str,
        api_call: Callable[[], str],
        cache_duration_ms: Optional[float] = None,
        enable_cache: bool = True,
        skip_cache: bool = False,
        estimated_cost: float = 0.0,
        annotate: bool = True,
        **_ignored: Any,
    ) -> str:
        """Return a cached answer for the query or fetch and store a new one.

        Args:
            query: User query
            context_fingerprint: Fingerprint of the injected context
            api_call: Performs the model call and returns its text
            cache_duration_ms: Per-call maximum age, defaults to the cache's
            enable_cache: False bypasses lookup and storage
            skip_cache: True bypasses lookup and storage
            estimated_cost: Cost credited as saved on a hit
            annotate: Append the freshness note to cached answers

        Returns:
            Model response text

        Raises:
            Exception: Whatever ``api_call`` raises, unchanged and uncached
        """
        if self.auto_cleanup:
            self.start_automatic_cleanup()

        if not enable_cache or skip_cache:
            return self._execute(api_call)

        max_age_ms = self.cache_duration_ms if cache_duration_ms is None else cache_duration_ms
        normalized = normalize_query(query)
        key = self.generate_cache_key(query, context_fingerprint, max_age_ms=max_age_ms)

        with self._lock:
            entry = self._get_live(key, max_age_ms)
            if entry is not None:
                self._stats.hits += 1
                self._stats.total_saved += estimated_cost
                age_ms = entry.age_ms(self._clock())
                response = entry.response
            else:
                self._stats.misses += 1

        if entry is not None:
            logger.info("cache.hit", query=query[:50], key=key, age_ms=int(age_ms))
            if annotate:
                return f"{response}\n\n{format_cache_age(age_ms)}"
            return response

        logger.info("cache.miss", query=query[:50], key=key)
        response = self._execute(api_call)

        self.set(key, response, CacheEntryMetadata(
            query=query[:100],
            normalized_query=normalized,
            context_fingerprint=context_fingerprint,
            estimated_cost=estimated_cost,
        ))
        return response

    def _execute(self, api_call: Callable[[], str]) -> str:
        try:
            return api_call()
        except Exception as e:
            logger.error("cache.api_call_failed", error=str(e))
            raise

    def generate_cache_key(
        self,
        query: str,
        context_fingerprint: str,
        max_age_ms: Optional[float] = None,
    ) -> str:
        """Key for ``query``: a live near-duplicate's key, else a fresh hash."""
        normalized = normalize_query(query)
        similar_key = self.find_similar_key(normalized, max_age_ms=max_age_ms)
        if similar_key is not None:
            return similar_key
        return f"{hash_text(normalized)}_{context_fingerprint}"

    def find_similar_key(
        self,
        normalized_query: str,
        max_age_ms: Optional[float] = None,
    ) -> Optional[str]:
        """Key of the first live entry whose query is similar enough.

        Scans every live entry, O(n) per lookup. The reused key keeps the
        fingerprint it was stored under.
        """
        max_age_ms = self.cache_duration_ms if max_age_ms is None else max_age_ms
        now = self._clock()
        with self._lock:
            for key, entry in self._entries.items():
                if entry.is_expired(now, max_age_ms):
                    continue
                similarity = word_set_similarity(normalized_query, entry.metadata.normalized_query)
                if similarity >= self.similarity_threshold:
                    logger.debug("cache.similar_query", key=key, similarity=round(similarity, 3))
                    return key
        return None

    def _get_live(self, key: str, max_age_ms: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock(), max_age_ms):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, max_age_ms: Optional[float] = None) -> Optional[CacheEntry]:
        """Live entry for ``key``; a stale entry is evicted and None returned."""
        with self._lock:
            return self._get_live(key, self.cache_duration_ms if max_age_ms is None else max_age_ms)

    def set(self, key: str, response: str, metadata: CacheEntryMetadata) -> None:
        """Store a response, evicting the oldest entries first if full."""
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self.evict_oldest()
            self._entries[key] = CacheEntry(
                key=key,
                response=response,
                created_at=self._clock(),
                metadata=metadata,
            )
            size = len(self._entries)
        logger.debug("cache.stored", key=key, size=size)

    def evict_oldest(self) -> int:
        """Remove the oldest 20% of entries (at least one) by creation time."""
        with self._lock:
            if not self._entries:
                return 0
            ordered = sorted(self._entries.values(), key=lambda e: e.created_at)
            to_remove = math.ceil(len(ordered) * EVICTION_FRACTION)
            for entry in ordered[:to_remove]:
                del self._entries[entry.key]
            self._stats.last_cleanup = self._clock()
        logger.info("cache.evicted", removed=to_remove)
        return to_remove

    def _evict_down_to(self, limit: int) -> int:
        # Caller holds the lock
        excess = len(self._entries) - limit
        if excess <= 0:
            return 0
        ordered = sorted(self._entries.values(), key=lambda e: e.created_at)
        for entry in ordered[:excess]:
            del self._entries[entry.key]
        self._stats.last_cleanup = self._clock()
        logger.info("cache.evicted", removed=excess, reason="capacity_reduced")
        return excess

    def cleanup_expired(self, max_age_ms: Optional[float] = None) -> int:
        """Remove every entry older than ``max_age_ms``."""
        max_age_ms = self.cache_duration_ms if max_age_ms is None else max_age_ms
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now, max_age_ms)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("cache.expired_removed", removed=len(expired))
        return len(expired)

    def automatic_cleanup(self) -> int:
        """One sweep: drop expired entries, then evict if still over 80% full.

        Returns:
            Number of entries removed; 0 if a sweep is already running
        """
        with self._lock:
            if self._sweeping:
                return 0
            self._sweeping = True
            try:
                initial_size = len(self._entries)
                self.cleanup_expired()
                if len(self._entries) > self.max_size * SWEEP_OCCUPANCY_THRESHOLD:
                    self.evict_oldest()
                removed = initial_size - len(self._entries)
                self._stats.automatic_cleanups += 1
                self._stats.last_cleanup = self._clock()
                final_size = len(self._entries)
            finally:
                self._sweeping = False

        if removed:
            logger.info("cache.sweep", removed=removed, before=initial_size, after=final_size)
        return removed

    def force_cleanup(self) -> int:
        """Run a sweep now."""
        return self.automatic_cleanup()

    def start_automatic_cleanup(self) -> None:
        """Start the periodic sweep thread if it is not running."""
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_sweeper = threading.Event()
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                args=(self._stop_sweeper, self.cleanup_interval_ms / 1000),
                name="response-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()
        logger.debug("cache.sweeper_started", interval_ms=self.cleanup_interval_ms)

    def _run_sweeper(self, stop: threading.Event, interval_s: float) -> None:
        while not stop.wait(interval_s):
            try:
                self.automatic_cleanup()
            except Exception as e:
                logger.error("cache.sweep_failed", error=str(e))

    def stop_automatic_cleanup(self) -> None:
        """Stop the periodic sweep thread."""
        with self._lock:
            sweeper = self._sweeper
            self._sweeper = None
            self._stop_sweeper.set()
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join(timeout=1.0)
            logger.debug("cache.sweeper_stopped")

    @property
    def automatic_cleanup_active(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def configure(
        self,
        cache_duration_ms: Optional[float] = None,
        max_size: Optional[int] = None,
        cleanup_interval_ms: Optional[float] = None,
        similarity_threshold: Optional[float] = None,
    ) -> None:
        """Change settings; a running sweeper restarts with a new interval.

        Shrinking ``max_size`` below the current size evicts the oldest
        entries down to the new limit.
        """
        _validate(
            self.cache_duration_ms if cache_duration_ms is None else cache_duration_ms,
            self.max_size if max_size is None else max_size,
            self.cleanup_interval_ms if cleanup_interval_ms is None else cleanup_interval_ms,
            self.similarity_threshold if similarity_threshold is None else similarity_threshold,
        )
        restart = False
        with self._lock:
            if cache_duration_ms is not None:
                self.cache_duration_ms = cache_duration_ms
            if max_size is not None:
                self.max_size = max_size
                self._evict_down_to(max_size)
            if similarity_threshold is not None:
                self.similarity_threshold = similarity_threshold
            if cleanup_interval_ms is not None and cleanup_interval_ms != self.cleanup_interval_ms:
                self.cleanup_interval_ms = cleanup_interval_ms
                restart = self.automatic_cleanup_active

        if restart:
            self.stop_automatic_cleanup()
            self.start_automatic_cleanup()

        logger.info(
            "cache.configured",
            duration_ms=self.cache_duration_ms,
            max_size=self.max_size,
            cleanup_interval_ms=self.cleanup_interval_ms,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus hit rate (percent, 2 decimals)."""
        with self._lock:
            stats = self._stats
            return {
                "cache_size": len(self._entries),
                "max_size": self.max_size,
                "total_requests": stats.total_requests,
                "hits": stats.hits,
                "misses": stats.misses,
                "hit_rate": round(stats.hit_rate, 2),
                "total_cost_saved": stats.total_saved,
                "average_cost_saved": stats.total_saved / stats.hits if stats.hits else 0.0,
                "automatic_cleanups": stats.automatic_cleanups,
                "last_cleanup": datetime.fromtimestamp(stats.last_cleanup).isoformat(),
                "cleanup_interval_minutes": self.cleanup_interval_ms / 60000,
            }

    def reset(self) -> None:
        """Drop every entry and zero the counters."""
        with self._lock:
            self._entries.clear()
            self._stats = CacheStats(last_cleanup=self._clock())
        logger.info("cache.reset")

    def export_cache(self) -> Dict[str, Any]:
        """Snapshot of entries and stats for debugging."""
        now = self._clock()
        with self._lock:
            entries = {
                key: {
                    "response": entry.response,
                    "created_at": datetime.fromtimestamp(entry.created_at).isoformat(),
                    "age_ms": int(entry.age_ms(now)),
                    "query": entry.metadata.query,
                    "context_fingerprint": entry.metadata.context_fingerprint,
                    "estimated_cost": entry.metadata.estimated_cost,
                }
                for key, entry in self._entries.items()
            }
        return {
            "cache": entries,
            "stats": self.get_stats(),
            "export_timestamp": datetime.fromtimestamp(now).isoformat(),
        }

    def get_health_report(self) -> Dict[str, Any]:
        """Occupancy, staleness and sweep status with recommendations."""
        now = self._clock()
        with self._lock:
            size = len(self._entries)
            expired = sum(1 for e in self._entries.values() if e.is_expired(now, self.cache_duration_ms))
            hit_rate = self._stats.hit_rate
            last_cleanup = self._stats.last_cleanup

        return {
            "is_healthy": size <= self.max_size and expired <= size * 0.1,
            "cache_size": size,
            "max_size": self.max_size,
            "usage_percentage": round(size / self.max_size * 100, 1),
            "expired_entries": expired,
            "minutes_since_last_cleanup": round((now - last_cleanup) / 60),
            "automatic_cleanup_active": self.automatic_cleanup_active,
            "recommendations": self._health_recommendations(size, expired, hit_rate),
        }

    def _health_recommendations(self, size: int, expired: int, hit_rate: float) -> List[str]:
        recommendations = []
        if size > self.max_size * 0.9:
            recommendations.append("Cache is nearly full - consider raising max_size")
        if expired > size * 0.2:
            recommendations.append("Many expired entries - consider lowering cache duration")
        if hit_rate < 30:
            recommendations.append("Low hit rate - check whether queries are similar enough to reuse")
        if not self.automatic_cleanup_active:
            recommendations.append("Automatic cleanup is off - enable it to keep the cache lean")
        return recommendations or ["Cache is operating optimally"]


def _validate(cache_duration_ms, max_size, cleanup_interval_ms, similarity_threshold) -> None:
    if cache_duration_ms <= 0:
        raise ValueError("cache_duration_ms must be > 0")
    if max_size <= 0:
        raise ValueError("max_size must be > 0")
    if cleanup_interval_ms <= 0:
        raise ValueError("cleanup_interval_ms must be > 0")
    if not 0 < similarity_threshold <= 1:
        raise ValueError("similarity_threshold must be in (0, 1]")
