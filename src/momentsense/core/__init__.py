"""Core domain: models, quotas, caching, scoring and privacy helpers."""
