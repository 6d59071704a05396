"""Pipeline orchestration: runs the ingestion stages for one upload."""
