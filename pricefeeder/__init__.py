"""Price aggregation, an OKX websocket provider and a WSGI API for oracle prices."""

__version__ = "0.1.0"