"""Catalog seed data: regular drops, condition-gated specials and shop mythics."""

from __future__ import annotations

import logging
import re

from esko.rewards.schemas import CatalogItem, Rarity, SpecialCondition
from esko.stores.base import CatalogStore

logger = logging.getLogger(__name__)

MYTHIC_PRICE = 50

_REGULAR: dict[Rarity, list[str]] = {
    Rarity.COMMON: [
        "2L Bottle of Coke", "7 Salt Pills", "Banana Peel", "Bandana", "Classic Beanie",
        "Foil Blanket", "Full Tub of Vaseline", "Gently Used Water Flask", "Half Eaten Gel",
        "Low-Battery Headlamp", "Mismatched Socks", "Rain Jacket", "Safety Whistle",
        "Sun Blasted Mile Marker", "Tie Dye Tee", "Tin Foil Hat", "Windbreaker", "Wool Hood",
    ],
    Rarity.UNCOMMON: [
        "10g of Creatine", "Emergency Poncho", "Foam Roller", "High Tech Chest Strap HR Monitor",
        "Nipple Tape", "Old Race Bib", "Open-topped Mug of Coffee", "Propeller Hat",
        "Smashed Alarm Clock", "Torn City Map", "Vintage Race Shirt", "Water Balloons", "Wristwatch",
    ],
    Rarity.RARE: [
        "Astronaut Helmet", "Carbon Plated Shoes", "Doggo", "High Visibility Cloak",
        "P.F. Flyers", "Stolen Soul",
    ],
    Rarity.EPIC: ["Barkleys Compass", "Blue Party Hat", "Katana", "Skill Cape", "Wild Mushrooms"],
    Rarity.LEGENDARY: [
        "Courtney's Shorts", "Killian's Trekking Poles", "Laz's Flannel",
        "Prefontaine's Race Singlet", "Walmsley's WS Race Shirt",
    ],
}

_SPECIAL: list[tuple[str, Rarity, SpecialCondition]] = [
    ("Box of Assorted Chocolate Protein Powder", Rarity.RARE, SpecialCondition.FEB_14),
    ("Caffeine Shotgun", Rarity.RARE, SpecialCondition.AFTER_10PM),
    ("Snowball Cannon", Rarity.RARE, SpecialCondition.SNOWING),
    ("Tailwind Espresso", Rarity.RARE, SpecialCondition.BEFORE_6AM),
    ("Umbrella Hat", Rarity.RARE, SpecialCondition.RAINING),
    ("Badwater Hat", Rarity.EPIC, SpecialCondition.HOT),
    ("Golden Belt Buckle", Rarity.EPIC, SpecialCondition.OVER_100KM),
    ("Ice Beard", Rarity.EPIC, SpecialCondition.COLD),
]

_MYTHIC: list[str] = ["Mythic Crown", "Mythic Cape", "Mythic Aura", "Mythic Wings", "Mythic Trail"]


def _image_url(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"/items/{slug}.png"


def build_catalog() -> list[CatalogItem]:
    """The reference catalog with stable ids."""
    rows: list[dict] = []
    for rarity, names in _REGULAR.items():
        rows.extend({"name": name, "rarity": rarity} for name in names)
    rows.extend(
        {"name": name, "rarity": rarity, "is_special_reward": True, "special_condition": condition}
        for name, rarity, condition in _SPECIAL
    )
    rows.extend(
        {
            "name": name,
            "rarity": Rarity.MYTHIC,
            "is_special_reward": True,
            "special_condition": SpecialCondition.PURCHASE,
            "price": MYTHIC_PRICE,
        }
        for name in _MYTHIC
    )
    return [
        CatalogItem(id=index, image_url=_image_url(row["name"]), **row)
        for index, row in enumerate(rows, start=1)
    ]


CATALOG_SEED_DATA: list[CatalogItem] = build_catalog()


async def seed_catalog(store: CatalogStore) -> int:
    """Upsert every catalog item. Returns number of items seeded."""
    seeded = 0
    for item in CATALOG_SEED_DATA:
        await store.upsert_item(item)
        seeded += 1

    specials = sum(1 for item in CATALOG_SEED_DATA if item.is_special_reward)
    logger.info("Seeded %d catalog items (%d special)", seeded, specials)
    return seeded
