"""
Database connectivity: connection descriptor resolution and pooling.
"""
