"""
Account and session services: the layer between the HTTP blueprints and the
SQLAlchemy stores.
"""
