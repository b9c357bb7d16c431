import os
import threading

def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ["true", "1", "yes", "on"]

class BackendSettings:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.DEBUG_MODE = os.environ.get("DEBUG_MODE","development")
        self.API_PREFIX = os.environ.get("API_PREFIX","")
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL","INFO").upper()
        self.CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS","*").split(",") if o.strip()]

        # Authentication settings
        self.JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", os.environ.get("JWT_SECRET", "change-me-in-production"))
        self.JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
        self.JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "authenticated")
        self.ACCESS_TOKEN_EXPIRY_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRY_MINUTES", "60"))
        self.REFRESH_TOKEN_EXPIRY_MINUTES = int(os.environ.get("REFRESH_TOKEN_EXPIRY_MINUTES", "43200"))

        # Database settings
        self.DATABASE_URL = os.environ.get("DATABASE_URL", None)
        self.POSTGRES_URL = os.environ.get("POSTGRES_URL", "localhost:5432")
        self.POSTGRES_USER = os.environ.get("POSTGRES_USER", "postgres")
        self.POSTGRES_PASSWORD = os.environ.get("POSTGRES_PASSWORD", "")
        self.POSTGRES_DB = os.environ.get("POSTGRES_DB", "portal")
        self.DATABASE_POOL_SIZE = int(os.environ.get("DATABASE_POOL_SIZE", "10"))
        self.DATABASE_MAX_OVERFLOW = int(os.environ.get("DATABASE_MAX_OVERFLOW", "5"))

        # Redis / cache settings
        self.REDIS_HOST = os.environ.get("REDIS_HOST", "localhost")
        self.REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
        self.REDIS_PASSWORD = os.environ.get("REDIS_PASSWORD", "")
        self.REDIS_DB = int(os.environ.get("REDIS_DB", "0"))
        self.REDIS_CACHE_ENABLED = os.environ.get("REDIS_CACHE_ENABLED", "true").lower() not in ["false", "0"]
        self.REDIS_DEFAULT_TTL = int(os.environ.get("REDIS_DEFAULT_TTL", "600"))
        self.REDIS_SHORT_TTL = int(os.environ.get("REDIS_SHORT_TTL", "300"))
        self.REDIS_MEDIUM_TTL = int(os.environ.get("REDIS_MEDIUM_TTL", "900"))
        self.REDIS_LONG_TTL = int(os.environ.get("REDIS_LONG_TTL", "3600"))
        self.REDIS_VERY_LONG_TTL = int(os.environ.get("REDIS_VERY_LONG_TTL", "86400"))

        # Media storage
        self.API_LOCAL_STORAGE_DIR = os.environ.get("API_LOCAL_STORAGE_DIR", "./storage")
        self.MEDIA_PUBLIC_BASE_URL = os.environ.get("MEDIA_PUBLIC_BASE_URL", "/media/public")
        self.MEDIA_MAX_UPLOAD_BYTES = int(os.environ.get("MEDIA_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

        # Bootstrap administrator
        self.PORTAL_ADMIN_EMAIL = os.environ.get("PORTAL_ADMIN_EMAIL", None)
        self.PORTAL_ADMIN_PASSWORD = os.environ.get("PORTAL_ADMIN_PASSWORD", None)
        self.SEED_ON_STARTUP = _env_flag("SEED_ON_STARTUP", "true")

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(BackendSettings, cls).__new__(cls)
        return cls._instance

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_URL}/{self.POSTGRES_DB}"

settings = BackendSettings()
