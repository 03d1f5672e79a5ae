"""
Backend package for the product catalog API.

This package provides a FastAPI application around the image-persistence
core: a blob store for product images, the catalog record store, the
ingestion pipeline that turns uploads into stored references, and the
reconciliation sweeps that clean up and back up the store.
"""
