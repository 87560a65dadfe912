"""
Archivist - Content Archive Ingestion Service

FastAPI trigger endpoints plus a queue worker that mirror immutable JSON
envelopes from the object store into the Postgres index tables.
"""

__version__ = "0.1.0"
