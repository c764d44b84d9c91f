import os

from .config import Config, db_config, env_flag, punch_config, recognition_config, storage_config

SECRET_KEY = Config.SECRET_KEY
DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

DB_CONFIG = db_config()
STORAGE_CONFIG = storage_config()
RECOGNITION_CONFIG = recognition_config()
PUNCH_CONFIG = punch_config()
MAX_UPLOAD_BYTES = Config.MAX_UPLOAD_BYTES

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = env_flag("AUTO_INIT_DB", "1")
