"""
Customer registrations module.

Scope:
- Public registration (always lands as `pending`)
- Staff review: list/filter/paginate, approve (mirrors into Shopify), reject
- Generic CRUD over the JSON API
- Dashboard counters and CSV export
"""
