from __future__ import annotations

from moviematch.api.caching.route_cache import CacheEntry, RouteCache, build_cache_key

__all__ = ["CacheEntry", "RouteCache", "build_cache_key"]
