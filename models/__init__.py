"""Instantiates the storage singleton used by the API (DBStorage, scoped_session)."""
from models.db_storage import DBStorage

storage = DBStorage()
storage.reload()
