"""
Stock recommendations from a predicted demand.

    safety_stock = round(0.20 × predicted)
    deficit      = max(0, predicted − current_stock)
    reorder      = max(0, predicted − current_stock + safety_stock)
"""

from typing import Optional

from models.forecast import SAFETY_STOCK_RATIO, StockRecommendation
from services.methodology import MethodologyTrail
from utils.math_utils import round_half_up


def safety_stock_for(predicted_quantity: int) -> int:
    """Buffer against forecast error, as a fixed share of predicted demand."""
    return round_half_up(SAFETY_STOCK_RATIO * max(0, predicted_quantity))


def generate_recommendation(
    predicted_quantity: int,
    current_stock: int,
    trail: Optional[MethodologyTrail] = None,
) -> StockRecommendation:
    """Pure and total: negative inputs are treated as 0."""
    predicted = max(0, int(predicted_quantity))
    stock = max(0, int(current_stock))

    safety_stock = safety_stock_for(predicted)
    deficit = max(0, predicted - stock)
    reorder_quantity = max(0, predicted - stock + safety_stock)

    if trail is not None:
        trail.add(
            "Stock recommendation",
            description="Safety stock buffer and reorder quantity against current stock.",
            formula=(
                "safety = round(0.20 × predicted); deficit = max(0, predicted − stock); "
                "reorder = max(0, predicted − stock + safety)"
            ),
            inputs={"predicted_quantity": predicted, "current_stock": stock, "ratio": SAFETY_STOCK_RATIO},
            outputs={
                "recommended_safety_stock": safety_stock,
                "deficit": deficit,
                "reorder_quantity": reorder_quantity,
            },
        )

    return StockRecommendation(
        predicted_quantity=predicted,
        current_stock=stock,
        recommended_safety_stock=safety_stock,
        deficit=deficit,
        reorder_quantity=reorder_quantity,
        needs_reorder=deficit > 0,
    )
