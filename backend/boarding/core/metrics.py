# Prometheus counters for the request-scoped caches. Hit/miss ratios for
# the batch loader and the JSON decode cache show whether listing pages
# really resolve related data in bulk.

from prometheus_client import Counter


CACHE_HIT_TOTAL = Counter(
    "boarding_cache_hit_total",
    "Cache hits by cache name",
    ["cache"],
)
CACHE_MISS_TOTAL = Counter(
    "boarding_cache_miss_total",
    "Cache misses by cache name",
    ["cache"],
)
BULK_LOAD_QUERIES_TOTAL = Counter(
    "boarding_bulk_load_queries_total",
    "Bulk load queries issued, by relation",
    ["relation"],
)
HANDLED_ERRORS_TOTAL = Counter(
    "boarding_handled_errors_total",
    "Errors converted to failure payloads, by category",
    ["category"],
)


def _label(value: object | None, default: str = "unknown") -> str:
    if value is None:
        return default
    if isinstance(value, str) and not value.strip():
        return default
    return str(value)


def record_cache_hit(cache_name: str) -> None:
    CACHE_HIT_TOTAL.labels(cache=_label(cache_name, "default")).inc()


def record_cache_miss(cache_name: str) -> None:
    CACHE_MISS_TOTAL.labels(cache=_label(cache_name, "default")).inc()


def record_bulk_load_query(relation: str) -> None:
    BULK_LOAD_QUERIES_TOTAL.labels(relation=_label(relation)).inc()


def record_handled_error(category: str | None) -> None:
    HANDLED_ERRORS_TOTAL.labels(category=_label(category)).inc()
