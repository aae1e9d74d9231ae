from __future__ import annotations

import argparse
from datetime import timedelta

from services.storefront.app.db.database import db_session
from services.storefront.app.db.init_db import init_db
from services.storefront.app.db.models import CartLine, Product, utcnow

DEMO_PRODUCTS = (
    (1, "Canvas Tote Bag", 1250),
    (2, "Ceramic Mug", 1500),
    (3, "Linen Apron", 2500),
    (4, "Cast Iron Skillet", 5000),
    (5, "Desk Lamp", 4000),
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo storefront data")
    parser.add_argument("--customer-id", type=int, default=1)
    parser.add_argument(
        "--stale-guest",
        default=None,
        help="Also create a guest cart for this address, old enough for the janitor to expire",
    )
    parser.add_argument("--stale-hours", type=int, default=48)
    args = parser.parse_args()

    init_db()

    db = db_session()
    try:
        for product_id, title, price_cents in DEMO_PRODUCTS:
            if db.get(Product, product_id) is None:
                db.add(Product(id=product_id, title=title, price_cents=price_cents))

        # A starter cart whose checkout total is 49.19 with default pricing.
        existing_cart = (
            db.query(CartLine)
            .filter(CartLine.owner_kind == "customer", CartLine.owner_ref == str(args.customer_id))
            .limit(1)
            .count()
        )
        if existing_cart == 0:
            db.add(CartLine(owner_kind="customer", owner_ref=str(args.customer_id), product_id=5, quantity=1))

        if args.stale_guest:
            added_at = utcnow() - timedelta(hours=args.stale_hours)
            db.add(
                CartLine(
                    owner_kind="guest",
                    owner_ref=args.stale_guest,
                    product_id=1,
                    quantity=2,
                    added_at=added_at,
                    updated_at=added_at,
                )
            )

        db.commit()
        print(f"Seeded {len(DEMO_PRODUCTS)} products and a cart for customer={args.customer_id}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
