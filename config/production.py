import os

from .config import Config, db_config, punch_config, recognition_config, storage_config

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")
DEBUG = False
LOG_LEVEL = Config.LOG_LEVEL

DB_CONFIG = db_config(pool_size=int(os.getenv("DB_POOL_SIZE", "10")))
STORAGE_CONFIG = storage_config()
RECOGNITION_CONFIG = recognition_config()
PUNCH_CONFIG = punch_config()
MAX_UPLOAD_BYTES = Config.MAX_UPLOAD_BYTES

AUTO_INIT_DB = Config.AUTO_INIT_DB
