"""
Reference resolver - detects references in messages and fetches their text.

Fetch failures never propagate: a reference whose text cannot be fetched is
still reported as detected, it just has no TextResult.
"""

import asyncio
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from infrastructure.config.settings import get_config
from infrastructure.external.sefaria_client import (
    SefariaClient,
    ReferenceProviderError,
    ReferenceTextNotFoundError,
)
from infrastructure.monitoring.logging_service import get_logger
from infrastructure.resilience.retry_service import (
    CircuitBreakerError,
    RetryExhaustedError,
    RetryService,
    get_retry_service,
)
from services.reference_service.models import ParsedReference, TextResult
from services.reference_service.reference_parser import (
    canonical_path,
    detect_references,
    normalize_reference,
    parse_reference,
    validate_reference,
)
from services.reference_service.text_cache import TextCache


_HTML_TAG = re.compile(r"<[^>]+>")


def flatten_text(value: Any) -> str:
    """Provider text may be a string or arbitrarily nested lists of strings"""
    if value is None:
        return ""
    if isinstance(value, str):
        return " ".join(_HTML_TAG.sub("", value).split())
    if isinstance(value, (list, tuple)):
        parts = (flatten_text(item) for item in value)
        return " ".join(part for part in parts if part)
    return ""


class ReferenceResolver:
    """
    Detects, validates and fetches religious-text references.
    """

    def __init__(self, client: Optional[SefariaClient] = None,
                 retry_service: Optional[RetryService] = None,
                 cache: Optional[TextCache] = None,
                 config=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self.client = client or SefariaClient(self.config)
        self.retry_service = retry_service or get_retry_service()
        refs = self.config.references
        self.cache = cache or TextCache(ttl_seconds=refs.cache_ttl_seconds, max_size=refs.cache_max_size)
        self.circuit_breaker = self.retry_service.get_sefaria_circuit_breaker()

    # Pure helpers, exposed on the resolver for callers holding only this object

    def detect_references(self, text: str) -> List[str]:
        return detect_references(text)

    def validate_reference(self, reference: str) -> bool:
        return validate_reference(reference)

    def normalize_reference(self, reference: str) -> Optional[str]:
        return normalize_reference(reference)

    def _to_result(self, parsed: ParsedReference, payload: Dict[str, Any]) -> Optional[TextResult]:
        text = flatten_text(payload.get("text"))
        if not text:
            return None
        hebrew = flatten_text(payload.get("he")) or None
        return TextResult(
            reference=parsed.normalized,
            book=parsed.book,
            chapter=parsed.chapter,
            verse=parsed.start_verse,
            end_verse=parsed.end_verse if parsed.end_verse != parsed.start_verse else None,
            text=text,
            hebrew_text=hebrew,
            source_url=f"{self.config.references.site_url}/{canonical_path(parsed)}",
            retrieved_at=datetime.now(),
        )

    async def fetch_text(self, reference: str) -> Optional[TextResult]:
        """
        Text for one reference, from cache or the provider

        Returns None for invalid references and for any fetch failure after retries.
        """
        parsed = parse_reference(reference)
        if parsed is None:
            self.logger.warning("Skipping fetch for invalid reference", extra={"reference": reference})
            return None

        key = parsed.normalized
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"Reference cache hit: {key}")
            return cached

        path = canonical_path(parsed)
        refs = self.config.references
        try:
            payload = await self.retry_service.retry_with_circuit_breaker(
                lambda: self.client.fetch_by_canonical_path(path),
                circuit_breaker=self.circuit_breaker,
                max_attempts=refs.max_attempts,
                base_delay=refs.base_delay,
                max_delay=refs.max_delay,
                operation=f"fetch {path}"
            )
        except ReferenceTextNotFoundError:
            self.logger.info(f"No text available for {key}")
            return None
        except (RetryExhaustedError, CircuitBreakerError, ReferenceProviderError) as e:
            self.logger.warning(f"Reference fetch failed for {key}: {e}")
            return None

        result = self._to_result(parsed, payload)
        if result is None:
            self.logger.info(f"Provider returned empty text for {key}")
            return None

        self.cache.put(key, result)
        return result

    async def fetch_texts(self, references: Iterable[str], limit: Optional[int] = None) -> List[TextResult]:
        """Fetch the first ``limit`` references concurrently, keeping only the successes, in order"""
        if limit is None:
            limit = self.config.references.max_fetch_per_message
        selected = list(references)[:limit]
        if not selected:
            return []

        outcomes = await asyncio.gather(*(self.fetch_text(ref) for ref in selected), return_exceptions=True)

        results: List[TextResult] = []
        for reference, outcome in zip(selected, outcomes):
            if isinstance(outcome, Exception):
                self.logger.error(f"Unexpected error fetching {reference}: {outcome.__class__.__name__}")
            elif outcome is not None:
                results.append(outcome)
        return results

    async def fetch_for_message(self, text: str, limit: Optional[int] = None) -> Tuple[List[str], List[TextResult]]:
        """
        Detect every reference in ``text`` and fetch the first few

        Returns:
            (all detected references, fetched texts)
        """
        detected = detect_references(text)
        fetched = await self.fetch_texts(detected, limit)
        if detected:
            self.logger.info(f"Detected {len(detected)} references, fetched {len(fetched)}")
        return detected, fetched

    def purge_expired(self) -> int:
        return self.cache.purge_expired()

    async def aclose(self):
        """Release the provider's HTTP connections"""
        await self.client.aclose()

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "circuit_breaker": self.circuit_breaker.get_state(),
        }


# Global resolver instance
_reference_resolver: Optional[ReferenceResolver] = None


def get_reference_resolver() -> ReferenceResolver:
    """Get the global reference resolver instance"""
    global _reference_resolver
    if _reference_resolver is None:
        _reference_resolver = ReferenceResolver()
    return _reference_resolver
