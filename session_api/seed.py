"""
Seed data for development and testing.
Creates one demo restaurant with a small menu, four tables and three staff
users (one per role).
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import Roles, TableStatus
from shared.config.logging import get_logger
from shared.security.password import hash_password
from session_api.models import MenuItem, MenuItemVariation, Restaurant, RestaurantTable, StaffUser
from session_api.services.domain.table_registry import generate_qr_code

logger = get_logger(__name__)

DEMO_RESTAURANT_SLUG = "numa-demo"
DEMO_PASSWORD = "demo-password"
DEMO_TABLE_COUNT = 4

DEMO_MENU = [
    # (category, name, price, variations)
    ("Starters", "Bruschetta", "8.99", []),
    ("Starters", "Soup of the day", "6.50", [("Cup", "0.00"), ("Bowl", "2.50")]),
    ("Mains", "Margherita pizza", "14.00", [("Regular", "0.00"), ("Large", "4.00")]),
    ("Mains", "Grilled salmon", "22.75", []),
    ("Desserts", "Tiramisu", "7.25", []),
    ("Drinks", "Lemonade", "3.50", []),
]


@dataclass
class SeededIds:
    restaurant_id: str
    table_ids: list[str]
    staff_emails: dict[str, str]


def seed(db: Session) -> SeededIds | None:
    """
    Seed the demo restaurant.
    Idempotent: does nothing when the demo restaurant already exists.
    """
    if db.scalar(select(Restaurant.id).where(Restaurant.slug == DEMO_RESTAURANT_SLUG)):
        logger.info("Demo data already seeded, skipping")
        return None

    logger.info("Seeding demo restaurant")

    restaurant = Restaurant(
        name="Numa Demo Bistro",
        slug=DEMO_RESTAURANT_SLUG,
        currency_code="USD",
        tax_rate=Decimal("0.0800"),
        service_charge_rate=Decimal("0.1000"),
    )
    db.add(restaurant)
    db.flush()

    for position, (category, name, price, variations) in enumerate(DEMO_MENU):
        item = MenuItem(
            restaurant_id=restaurant.id,
            name=name,
            category=category,
            price=Decimal(price),
            sort_order=position,
        )
        db.add(item)
        db.flush()
        for index, (variation_name, adjustment) in enumerate(variations):
            db.add(
                MenuItemVariation(
                    menu_item_id=item.id,
                    name=variation_name,
                    price_adjustment=Decimal(adjustment),
                    is_default=index == 0,
                )
            )

    tables = []
    for number in range(1, DEMO_TABLE_COUNT + 1):
        table = RestaurantTable(
            restaurant_id=restaurant.id,
            table_number=str(number),
            capacity=4,
            qr_code=generate_qr_code(),
            status=TableStatus.AVAILABLE,
        )
        db.add(table)
        tables.append(table)

    staff_emails = {}
    for role in Roles.ALL:
        email = f"{role.lower()}@numa-demo.com"
        db.add(
            StaffUser(
                restaurant_id=restaurant.id,
                email=email,
                password_hash=hash_password(DEMO_PASSWORD),
                full_name=f"Demo {role.title()}",
                role=role,
            )
        )
        staff_emails[role] = email

    db.commit()
    logger.info(
        "Demo data seeded",
        restaurant_id=restaurant.id,
        tables=len(tables),
        menu_items=len(DEMO_MENU),
    )
    return SeededIds(
        restaurant_id=restaurant.id,
        table_ids=[table.id for table in tables],
        staff_emails=staff_emails,
    )
