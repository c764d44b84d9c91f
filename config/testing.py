from .config import Config, db_config, punch_config, recognition_config, storage_config

SECRET_KEY = "test-secret"
DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

DB_CONFIG = db_config(database="attendease_test", pool_size=0)
STORAGE_CONFIG = storage_config(default_backends="local")
RECOGNITION_CONFIG = recognition_config(collection_id="attendance-faces-test")
PUNCH_CONFIG = punch_config()
MAX_UPLOAD_BYTES = Config.MAX_UPLOAD_BYTES

AUTO_INIT_DB = False
