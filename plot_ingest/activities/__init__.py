"""Ingestion pipeline activities.

Each activity performs a single stage of the import, in order:
- read_archive: Unpack the uploaded ``.zip`` and select the shapefile dataset
- decode_features: Decode ``.shp``/``.dbf`` records into raw features
- normalize_plot: Map attributes onto the plot schema, derive area and bounds
- validate_plots: Apply geometry and area rules, assemble the import batch
"""
