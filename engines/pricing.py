"""
Thynk ROI Modeler: Blended Pricing
Payer-mix blend of the medicare-equivalent and commercial unit prices.
"""
from engines.catalog import PRICE_TYPES


def blend(lower, higher, commercial_share):
    return (1 - commercial_share) * lower + commercial_share * higher


def blended_prices(params):
    """Effective unit price per billable service type.

    price = (1 - w) × medicare + w × commercial, w = commercialPct / 100.
    One global mix for every service type and every module.
    """
    w = params['commercialPct'] / 100
    prices = params['prices']
    return {ptype: blend(prices[ptype]['medicare'], prices[ptype]['commercial'], w)
            for ptype in PRICE_TYPES}
