"""Feature store adapters.

The persistence collaborator that receives validated plots:
- base: ``FeatureStore`` contract, ``InsertResult``, ``StoreError``
- memory: dict-backed store for tests and local runs
- postgis: PostgreSQL/PostGIS store (psycopg2)
- factory: selects the adapter named by configuration
"""

from plot_ingest.stores.base import FeatureStore, InsertResult, StoreError
from plot_ingest.stores.factory import get_feature_store, list_stores, register_store

__all__ = [
    "FeatureStore",
    "InsertResult",
    "StoreError",
    "get_feature_store",
    "list_stores",
    "register_store",
]
