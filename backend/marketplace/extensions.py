# Overview: Flask extension instances for database, migrations, object storage and cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.storage_service import ObjectStore
from .services.cache_service import CatalogCache

db = SQLAlchemy()
migrate = Migrate()
object_store = ObjectStore()
catalog_cache = CatalogCache()
