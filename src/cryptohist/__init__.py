"""
Hourly price history backfill for crypto instruments.

This package walks the CryptoCompare ``histohour`` API backward in time and
stores every hourly quote in a per-instrument SQLite table:

- Async HTTP client with request timeouts and retry on transient failures
- One concurrent backfill driver per instrument
- Idempotent, transactional page writes (duplicates are skipped)
- Fixed inter-request delay to pace the remote API
"""

__version__ = "1.0.0"
