"""
Site Classifier: decides whether a URL belongs to a distracting site.

Holds a snapshot of the enabled rules; the owner calls reload_rules() after
any registry change. Matching is a case-insensitive "pattern is contained in
hostname" test, so 'example.com' also covers 'sub.example.com'. When several
rules match, the first one in registry order wins.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlparse

from ..models import NO_MATCH, Classification, RuleSource, SiteRule

logger = logging.getLogger(__name__)

_TRACKABLE_SCHEMES = ("http", "https")


def hostname_of(url: Optional[str]) -> Optional[str]:
    """Lowercased hostname for http(s) URLs, else None."""
    if not url or not isinstance(url, str):
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        logger.warning("Unparsable URL %r", url)
        return None
    if parsed.scheme.lower() not in _TRACKABLE_SCHEMES:
        return None
    return parsed.hostname or None


class SiteClassifier:

    def __init__(self, rules: RuleSource):
        self._source = rules
        self._rules: Optional[List[SiteRule]] = None

    @property
    def is_loaded(self) -> bool:
        return self._rules is not None

    @property
    def rules(self) -> List[SiteRule]:
        return list(self._rules or [])

    async def reload_rules(self) -> int:
        """Refresh the snapshot. A failed read leaves an empty (but loaded) snapshot."""
        try:
            rules = await self._source.get_enabled_rules()
        except Exception:
            logger.exception("Could not load site rules; classifying nothing as distracting")
            rules = []
        self._rules = [r for r in rules if r.is_enabled and r.pattern]
        logger.info("Classifier loaded %d enabled site rule(s)", len(self._rules))
        return len(self._rules)

    def classify(self, url: Optional[str]) -> Classification:
        if self._rules is None:
            logger.warning("Classifier queried before any rules were loaded")
            return NO_MATCH

        host = hostname_of(url)
        if not host:
            return NO_MATCH

        for rule in self._rules:
            if rule.pattern.lower() in host:
                return Classification(is_match=True, site_id=rule.id, pattern=rule.pattern)
        return NO_MATCH
