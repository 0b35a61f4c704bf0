"""
Postgres round-trip latency benchmark service.
"""

__version__ = "0.1.0"
