import os

# Services build the shared engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from services.catalog_service.models import Brand, Category, Product  # noqa: E402
from services.notification_service import models as notification_models  # noqa: E402,F401
from services.order_service import models as order_models  # noqa: E402,F401
from shared.database import Base  # noqa: E402

ADMIN_HEADERS = {"X-User-Email": "admin@gear-store.ge"}


class FakeRedis:
    """Dict-backed stand-in for the redis commands the cart repository uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def ping(self):
        return True


class FakeProducer:
    """Records published events; set ``fail`` to simulate a broker outage."""

    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, topic, event):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.published.append((topic, event))

    def flush(self):
        pass

    def topics(self):
        return [topic for topic, _ in self.published]


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def catalog(db):
    """Two categories, two brands and a handful of products."""
    boots = Category(id="cat-boots", name_en="Boots", name_ka="ფეხსაცმელი", slug="boots")
    knives = Category(id="cat-knives", name_en="Knives", name_ka="დანები", slug="knives")
    hidden = Category(id="cat-hidden", name_en="Archive", name_ka="არქივი", slug="archive", is_active=False)
    magnum = Brand(id="brand-magnum", name="Magnum", slug="magnum")
    gerber = Brand(id="brand-gerber", name="Gerber", slug="gerber")
    db.add_all([boots, knives, hidden, magnum, gerber])

    products = [
        Product(
            id="p-boots",
            name_en="Combat Boots",
            name_ka="საბრძოლო ჩექმები",
            price=250.0,
            category_id="cat-boots",
            brand_id="brand-magnum",
            stock=10,
            sizes=[{"size": "42", "stock": 4, "available": True}, {"size": "43", "stock": 6, "available": True}],
            sku="BOOT-1",
            is_featured=True,
            created_at=datetime(2026, 3, 1),
        ),
        Product(
            id="p-knife",
            name_en="Utility Knife",
            name_ka="უნივერსალური დანა",
            price=80.0,
            category_id="cat-knives",
            brand_id="brand-gerber",
            stock=3,
            sku="KNIFE-1",
            is_new_arrival=True,
            created_at=datetime(2026, 4, 1),
        ),
        Product(
            id="p-gloves",
            name_en="Assault Gloves",
            name_ka="ხელთათმანები",
            price=45.0,
            stock=0,
            sku="GLOVE-1",
            created_at=datetime(2026, 2, 1),
        ),
        Product(
            id="p-retired",
            name_en="Retired Boots",
            price=120.0,
            category_id="cat-boots",
            stock=5,
            is_active=False,
            created_at=datetime(2026, 5, 1),
        ),
    ]
    db.add_all(products)
    db.commit()
    return {product.id: product for product in products}
