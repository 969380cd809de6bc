import os
import threading

def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ["true", "1", "yes", "on"]

class BackendSettings:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.DEBUG_MODE = os.environ.get("DEBUG_MODE","development")

        # Session token settings
        self.JWT_SECRET = os.environ.get("JWT_SECRET","change-me-in-production")
        self.JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM","HS256")
        self.SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", 7 * 24 * 60 * 60))

        # Cookies
        self.AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME","auth_token")
        self.CSRF_COOKIE_NAME = os.environ.get("CSRF_COOKIE_NAME","csrf_token")
        self.CSRF_HEADER_NAME = os.environ.get("CSRF_HEADER_NAME","x-csrf-token")
        self.COOKIE_SECURE = _env_flag("COOKIE_SECURE", "true" if self.DEBUG_MODE == "production" else "false")

        # Public facing application
        self.APP_URL = os.environ.get("APP_URL","http://localhost:3000")
        self.BRAND_NAME = os.environ.get("BRAND_NAME","CourseHub")
        self.CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", self.APP_URL).split(",") if o.strip()]

        # Mail delivery (Mailgun HTTP API)
        self.MAILGUN_API_KEY = os.environ.get("MAILGUN_API_KEY",None)
        self.MAILGUN_DOMAIN = os.environ.get("MAILGUN_DOMAIN",None)
        self.MAILGUN_FROM_EMAIL = os.environ.get("MAILGUN_FROM_EMAIL",None)
        self.MAILGUN_API_URL = os.environ.get("MAILGUN_API_URL","https://api.mailgun.net")
        self.MAILGUN_RESET_TEMPLATE = os.environ.get("MAILGUN_RESET_TEMPLATE","forgot-password")

        # Password reset
        self.PASSWORD_RESET_TTL_SECONDS = int(os.environ.get("PASSWORD_RESET_TTL_SECONDS", 60 * 60))
        self.PASSWORD_RESET_MAX_PER_HOUR = int(os.environ.get("PASSWORD_RESET_MAX_PER_HOUR", 3))

        # Rate limiting
        self.LOGIN_RATE_LIMIT = int(os.environ.get("LOGIN_RATE_LIMIT", 5))
        self.LOGIN_RATE_WINDOW_SECONDS = int(os.environ.get("LOGIN_RATE_WINDOW_SECONDS", 60))

        # Bootstrap administrator
        self.ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL",None)
        self.ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD",None)

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(BackendSettings, cls).__new__(cls)
        return cls._instance

settings = BackendSettings()
