"""
HTTP API for the latency benchmark service.
"""
