"""Feed aggregation repository: concurrent fetching, normalization and a local feed store."""

__version__ = "0.1.0"
