"""
Pipeline package: the I/O side of reconciliation.

Catalog store, source adapters, ingestion, auto-map, aggregation, review
queue writes and the scheduler that drives them. Pure computation lives in
market_data.engine.
"""
