"""
Domain models, enumerations and ORM tables.
"""
