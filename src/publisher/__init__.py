"""
Order Test Publisher Package

Publishes mock orders to the Kafka orders topic so the order service can be
exercised end to end without an upstream system.

Package components:
- config.py: Configuration from environment variables
- mock_data.py: Faker-based order factory and the canonical sample order
- publisher.py: Kafka producer wrapper (messages keyed by order_uid)
- main.py: CLI entry point
"""

__version__ = "1.0.0"

from src.publisher.config import PublisherConfig, load_config

__all__ = [
    "PublisherConfig",
    "load_config",
]
