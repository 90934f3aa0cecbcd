"""
pytest suite for the Alternus checkout backend.

Test categories:
- Unit tests: pricing, validators, processor adapters, rate limiter
- Integration tests: services against SQLite (in-memory, or file-backed for concurrency)
- API tests: full FastAPI app through httpx ASGITransport
"""
