"""Domain layer (pure logic).

- Keep round resolution and drink accounting rules here.
- Avoid I/O: no stores, no Redis, no SQLAlchemy, no FastAPI.
- Time, randomness and ids are passed in by the services, never read here.
"""
