"""Load NDJSON files from a directory tree into an Elasticsearch index."""

__version__ = "0.1.0"
