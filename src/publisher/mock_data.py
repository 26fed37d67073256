"""
Mock Order Data

Builds orders in the wire format consumed by the order service.

- ``sample_order()``: the canonical test order (b563feb7b2b84b6test)
- ``MockOrderFactory``: seeded Faker generator for any number of valid
  orders, plus deliberately invalid messages for exercising the
  consumer's skip path

Same seed = same orders, which keeps test runs reproducible.
"""

import json
import random
import string
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from faker import Faker

SAMPLE_ORDER_UID = "b563feb7b2b84b6test"
SAMPLE_TRACK_NUMBER = "WBILMTESTTRACK"

CURRENCIES = ["USD", "EUR", "RUB"]
PROVIDERS = ["wbpay", "sberpay", "yoomoney"]
BANKS = ["alpha", "sberbank", "tinkoff", "vtb"]
DELIVERY_SERVICES = ["meest", "cdek", "dhl", "boxberry"]
LOCALES = ["en", "ru"]
BRANDS = ["Vivienne Sabo", "Apple", "Samsung", "Nike", "Adidas", "Lego"]
SIZES = ["0", "S", "M", "L", "XL", "128GB"]

# Window for generated date_created values
CREATED_FROM = datetime(2024, 1, 1, tzinfo=timezone.utc)
CREATED_TO = datetime(2025, 1, 1, tzinfo=timezone.utc)

# Kinds of broken messages produced by MockOrderFactory.invalid_message()
INVALID_KINDS = ["missing_order_uid", "missing_track_number", "empty_items", "malformed_json"]


def sample_order(date_created: str = "2021-11-26T06:22:19Z") -> Dict[str, Any]:
    """Return the canonical test order as a JSON-ready dictionary."""
    return {
        "order_uid": SAMPLE_ORDER_UID,
        "track_number": SAMPLE_TRACK_NUMBER,
        "entry": "WBIL",
        "delivery": {
            "name": "Test Testov",
            "phone": "+9720000000",
            "zip": "2639809",
            "city": "Kiryat Mozkin",
            "address": "Ploshad Mira 15",
            "region": "Kraiot",
            "email": "test@gmail.com",
        },
        "payment": {
            "transaction": SAMPLE_ORDER_UID,
            "request_id": "",
            "currency": "USD",
            "provider": "wbpay",
            "amount": 1817,
            "payment_dt": 1637907727,
            "bank": "alpha",
            "delivery_cost": 1500,
            "goods_total": 317,
            "custom_fee": 0,
        },
        "items": [
            {
                "chrt_id": 9934930,
                "track_number": SAMPLE_TRACK_NUMBER,
                "price": 453,
                "rid": "ab4219087a764ae0btest",
                "name": "Mascaras",
                "sale": 30,
                "size": "0",
                "total_price": 317,
                "nm_id": 2389212,
                "brand": "Vivienne Sabo",
                "status": 202,
            }
        ],
        "locale": "en",
        "internal_signature": "",
        "customer_id": "test",
        "delivery_service": "meest",
        "shardkey": "9",
        "sm_id": 99,
        "date_created": date_created,
        "oof_shard": "1",
    }


class MockOrderFactory:
    """
    Generates realistic orders with Faker.

    Every generated order passes the order service's validation: non-empty
    order_uid and track_number and at least one item. Totals are
    consistent (goods_total = sum of item total_price, amount = goods_total
    + delivery_cost + custom_fee).
    """

    def __init__(self, seed: int = 42, locale: str = "en_US"):
        self.seed = seed
        self.fake = Faker(locale)
        self.fake.seed_instance(seed)
        self.random = random.Random(seed)

    def _token(self, length: int) -> str:
        alphabet = string.ascii_lowercase + string.digits
        return "".join(self.random.choice(alphabet) for _ in range(length))

    def generate_order_uid(self) -> str:
        """19-character lowercase alphanumeric uid, e.g. ``b563feb7b2b84b6a1c2``."""
        return self._token(19)

    def generate_track_number(self) -> str:
        return "WBIL" + "".join(self.random.choice(string.ascii_uppercase) for _ in range(10))

    def _generate_items(self, track_number: str) -> List[Dict[str, Any]]:
        items = []
        for _ in range(self.random.randint(1, 5)):
            price = self.random.randint(100, 10000)
            sale = self.random.choice([0, 10, 20, 30, 50])
            items.append(
                {
                    "chrt_id": self.random.randint(1000000, 9999999),
                    "track_number": track_number,
                    "price": price,
                    "rid": self._token(21),
                    "name": self.fake.word().capitalize(),
                    "sale": sale,
                    "size": self.random.choice(SIZES),
                    "total_price": price * (100 - sale) // 100,
                    "nm_id": self.random.randint(1000000, 9999999),
                    "brand": self.random.choice(BRANDS),
                    "status": self.random.choice([200, 202]),
                }
            )
        return items

    def generate_order(self) -> Dict[str, Any]:
        """Build one valid order as a JSON-ready dictionary."""
        order_uid = self.generate_order_uid()
        track_number = self.generate_track_number()
        items = self._generate_items(track_number)

        goods_total = sum(item["total_price"] for item in items)
        delivery_cost = self.random.choice([0, 500, 1500])
        created = self.fake.date_time_between(
            start_date=CREATED_FROM, end_date=CREATED_TO, tzinfo=timezone.utc
        )

        return {
            "order_uid": order_uid,
            "track_number": track_number,
            "entry": "WBIL",
            "delivery": {
                "name": self.fake.name(),
                "phone": self.fake.phone_number(),
                "zip": self.fake.postcode(),
                "city": self.fake.city(),
                "address": self.fake.street_address(),
                "region": self.fake.state(),
                "email": self.fake.email(),
            },
            "payment": {
                "transaction": order_uid,
                "request_id": "",
                "currency": self.random.choice(CURRENCIES),
                "provider": self.random.choice(PROVIDERS),
                "amount": goods_total + delivery_cost,
                "payment_dt": int(created.timestamp()),
                "bank": self.random.choice(BANKS),
                "delivery_cost": delivery_cost,
                "goods_total": goods_total,
                "custom_fee": 0,
            },
            "items": items,
            "locale": self.random.choice(LOCALES),
            "internal_signature": "",
            "customer_id": self.fake.user_name(),
            "delivery_service": self.random.choice(DELIVERY_SERVICES),
            "shardkey": str(self.random.randint(0, 9)),
            "sm_id": self.random.randint(1, 99),
            "date_created": created.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "oof_shard": str(self.random.randint(1, 2)),
        }

    def generate_orders(self, count: int) -> List[Dict[str, Any]]:
        return [self.generate_order() for _ in range(count)]

    def invalid_message(self, kind: str) -> Tuple[str, bytes]:
        """
        Build a message the order service must skip.

        Args:
            kind: One of INVALID_KINDS

        Returns:
            (key, value) pair ready to publish
        """
        order = self.generate_order()
        key = order["order_uid"]

        if kind == "missing_order_uid":
            order["order_uid"] = ""
        elif kind == "missing_track_number":
            order["track_number"] = ""
        elif kind == "empty_items":
            order["items"] = []
        elif kind == "malformed_json":
            return key, b'{"order_uid": "' + key.encode("utf-8") + b'", "items": ['
        else:
            raise ValueError(f"unknown invalid message kind: {kind}")

        return key, json.dumps(order).encode("utf-8")


def now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
