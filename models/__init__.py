"""
Models package: exposes the process-wide DBStorage instance as `storage`.
"""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
