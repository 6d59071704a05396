"""Land-plot shapefile ingestion pipeline.

Turns an uploaded shapefile package (``.zip`` with ``.shp``/``.dbf`` and
optional ``.prj``) into validated, de-duplicated plot records and submits
them to the spatial feature store as a single import batch.
"""

__version__ = "0.1.0"
