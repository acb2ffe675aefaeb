from scoutbot.cache.resolution import CacheEntry, ResolutionCache, normalize_key

__all__ = ["CacheEntry", "ResolutionCache", "normalize_key"]
