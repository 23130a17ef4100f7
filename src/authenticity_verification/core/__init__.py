"""
Core infrastructure: logging, database lifecycle and shared exceptions.
"""
