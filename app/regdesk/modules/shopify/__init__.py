"""
Shopify Admin API access (customer create + order/consent aggregates).
"""
