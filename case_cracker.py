# case_cracker.py
# Expected value of opening a sealed product vs. its purchase price

from dataclasses import dataclass, field, asdict
from typing import Dict, List


@dataclass(frozen=True)
class Pull:
    name: str
    probability: float
    value: float


@dataclass(frozen=True)
class SealedProduct:
    name: str
    ev_multiplier: float
    pulls: List[Pull] = field(default_factory=list)


@dataclass
class EVResult:
    product: str
    purchase_price: float
    expected_value: float
    break_even: bool
    profit_loss: float
    pulls: List[Pull]

    def to_dict(self) -> dict:
        return asdict(self)


# === Known sealed products
PRODUCTS: Dict[str, SealedProduct] = {
    "base-set-box": SealedProduct(
        name="Base Set Booster Box",
        ev_multiplier=1.2,
        pulls=[
            Pull("Charizard (Holo)", 0.1, 5000),
            Pull("Blastoise (Holo)", 0.1, 800),
            Pull("Venusaur (Holo)", 0.1, 600),
        ],
    ),
    "jungle-box": SealedProduct(
        name="Jungle Booster Box",
        ev_multiplier=0.9,
    ),
}


def calculate_product_ev(product_id: str, purchase_price: float) -> EVResult:
    if not product_id or not purchase_price or purchase_price <= 0:
        raise ValueError("Please select a product and enter a purchase price.")

    product = PRODUCTS.get(product_id)
    if product is None:
        raise KeyError(product_id)

    expected = purchase_price * product.ev_multiplier
    return EVResult(
        product=product_id,
        purchase_price=purchase_price,
        expected_value=expected,
        break_even=expected >= purchase_price,
        profit_loss=expected - purchase_price,
        pulls=list(product.pulls),
    )
