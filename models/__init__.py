"""
Persistence package. ``storage`` is the process-wide DBStorage; the app
factory points it at DATABASE_URL via ``storage.reload(...)``.
"""
from models.db_storage import DBStorage

storage = DBStorage()
