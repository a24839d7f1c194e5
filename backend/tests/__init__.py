"""
Test suite for the marketplace lifecycle backend.

Test categories:
- Unit tests: policy tables, dispute status derivation, rate limiter, auth
- Service tests: promotion, order, delivery and dispute services on SQLite
- API tests: the FastAPI app through httpx
"""
