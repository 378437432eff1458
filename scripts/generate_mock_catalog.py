import os
from decimal import Decimal

import numpy as np
import pandas as pd

from orders.inventory import Product
from orders.models import ProducerProfile
from partners.models import DeliveryPartner

# Tiruchirappalli and the farms along the Cauvery
CENTER = (10.79, 78.70)

PRODUCE = [
    # name, unit, low price, high price
    ("Tomatoes", "kg", 25.0, 60.0),
    ("Okra", "kg", 40.0, 80.0),
    ("Small onions", "kg", 50.0, 110.0),
    ("Brinjal", "kg", 30.0, 70.0),
    ("Nendran bananas", "dozen", 60.0, 120.0),
    ("Tender coconuts", "piece", 30.0, 55.0),
    ("Curry leaves", "bunch", 5.0, 15.0),
    ("Spinach", "bunch", 10.0, 30.0),
]


def generate_mock_catalog(num_farms=20, num_partners=60, center=CENTER, seed=None):
    """
    Generates farms, their produce listings and delivery partners scattered around a town.
    Farms sit within ~5km of the centre (roughly 0.05 degrees) and partners within ~8km,
    so most orders find several partners inside the offer radius.
    Returns (farms, products, partners) DataFrames.
    """
    rng = np.random.default_rng(seed)

    # 1. Farms
    farms = pd.DataFrame({
        "farm_id": [f"farm-{index + 1:03d}" for index in range(num_farms)],
        "name": [f"Farm {index + 1}" for index in range(num_farms)],
        "lat": np.round(center[0] + rng.uniform(-0.05, 0.05, num_farms), 6),
        "lon": np.round(center[1] + rng.uniform(-0.05, 0.05, num_farms), 6),
    })

    # 2. Listings: each farm sells a few distinct items
    rows = []
    for farm_id in farms["farm_id"]:
        picks = rng.choice(len(PRODUCE), size=int(rng.integers(2, 5)), replace=False)
        for pick in sorted(picks):
            name, unit, low, high = PRODUCE[pick]
            rows.append({
                "product_id": f"{farm_id}-{name.lower().replace(' ', '-')}",
                "farm_id": farm_id,
                "name": name,
                "unit": unit,
                "price": round(float(rng.uniform(low, high)), 2),
                "quantity": int(rng.integers(10, 200)),
                "max_order_quantity": int(rng.choice([10, 25, 50])),
            })
    products = pd.DataFrame(rows)

    # 3. Partners: 80% online, the rest offline
    partners = pd.DataFrame({
        "partner_id": [f"partner-{index + 1:03d}" for index in range(num_partners)],
        "lat": np.round(center[0] + rng.uniform(-0.08, 0.08, num_partners), 6),
        "lon": np.round(center[1] + rng.uniform(-0.08, 0.08, num_partners), 6),
        "vehicle_type": rng.choice(["bike", "scooter", "van"], size=num_partners, p=[0.6, 0.3, 0.1]),
        "is_online": rng.random(num_partners) < 0.8,
    })
    return farms, products, partners


def save_catalog(farms, products, partners, output_dir="."):
    paths = {}
    for name, frame in (("farms", farms), ("products", products), ("partners", partners)):
        path = os.path.join(output_dir, f"mock_{name}.csv")
        frame.to_csv(path, index=False)
        paths[name] = path
    return paths


def load_catalog(market, farms, products, partners):
    """Registers generated farms, listings and partners with a Marketplace."""
    for farm in farms.itertuples(index=False):
        market.add_producer(ProducerProfile(id=farm.farm_id, name=farm.name, location=(float(farm.lat), float(farm.lon))))
    for item in products.itertuples(index=False):
        market.inventory.add_product(Product(
            id=item.product_id,
            name=item.name,
            price=Decimal(str(item.price)),
            quantity=int(item.quantity),
            seller_id=item.farm_id,
            unit=item.unit,
            max_order_quantity=int(item.max_order_quantity),
        ))
    for partner in partners.itertuples(index=False):
        online = bool(partner.is_online)
        market.partners.register(DeliveryPartner.new(
            partner.partner_id,
            float(partner.lat),
            float(partner.lon),
            is_online=online,
            is_available=online,
            vehicle_type=str(partner.vehicle_type),
        ))
    return {"farms": len(farms), "products": len(products), "partners": len(partners)}


if __name__ == "__main__":
    farms, products, partners = generate_mock_catalog(num_farms=25, num_partners=80, seed=42)
    paths = save_catalog(farms, products, partners)
    print(f"Generated {len(farms)} farms, {len(products)} listings and {len(partners)} partners")
    for name, path in paths.items():
        print(f"  {name}: {path}")

    print("\nMost listed produce:")
    for name, count in products["name"].value_counts().head(5).items():
        print(f"  {name}: {count} farms")
    print(f"\nPartners online: {int(partners['is_online'].sum())} of {len(partners)}")
