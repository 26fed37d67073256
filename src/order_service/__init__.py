"""
Order Service Package

Consumes order events from Kafka, persists them to PostgreSQL, keeps every
known order in an in-memory cache and serves them over a read-only HTTP API.

SERVICE ARCHITECTURE:
┌─────────────┐     ┌──────────────┐     ┌────────────────┐
│   Kafka     │────▶│  Consumer    │────▶│   PostgreSQL   │
│   orders    │     │  (per-part.  │     │  orders table  │
│   topic     │     │   claims)    │     └───────┬────────┘
└─────────────┘     └──────┬───────┘             │ warm-up / miss
                           ▼                     ▼
                    ┌──────────────┐     ┌────────────────┐
                    │ Order cache  │◀───▶│  HTTP read API │
                    └──────────────┘     └────────────────┘

Package components:
- config.py: Configuration from environment variables
- models.py: Order domain model and ORM row
- validator.py: Decoding and validation of order messages
- cache.py: Concurrent in-memory order cache
- database.py / repository.py: PostgreSQL connection and order store
- handler.py: Ingest write path (store, then cache)
- consumer.py: Kafka consumer group member
- read_service.py / api.py: Cache-aside read path and HTTP server
- lifecycle.py / main.py: Startup, shutdown and CLI
"""

__version__ = "1.0.0"
__author__ = "Order Service"

from src.order_service.config import ServiceConfig, load_config
from src.order_service.models import Order

__all__ = [
    "Order",
    "ServiceConfig",
    "load_config",
]
