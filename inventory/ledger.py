"""
Stock ledger helpers used inside engine transactions.
"""

from core.exceptions import StockRecordMissing

from .models import Stock


def lock_stock_rows(variant_ids):
    """
    Load and exclusively lock the stock rows for the given variants.

    Rows are locked in ascending variant-id order so that two transactions
    locking overlapping sets cannot deadlock each other. Must be called
    inside a transaction.

    Returns:
        dict mapping variant id -> locked Stock

    Raises:
        StockRecordMissing for the first variant without a stock row
    """
    ordered_ids = sorted(set(variant_ids), key=str)
    rows = list(
        Stock.objects.select_for_update()
        .filter(product_variant_id__in=ordered_ids)
        .order_by('product_variant_id')
    )
    stocks = {row.product_variant_id: row for row in rows}

    for variant_id in ordered_ids:
        if variant_id not in stocks:
            raise StockRecordMissing(f"Stock record not found for variant '{variant_id}'.")

    return stocks
