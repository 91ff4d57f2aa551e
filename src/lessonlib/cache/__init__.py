from lessonlib.cache.cache_engine import CacheEngine

__all__ = ["CacheEngine"]
