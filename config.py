import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as autoclient.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "autoclient.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-only-change-me-too")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "autoclient")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

    # Email OTP (login)
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))  # 10 minutes
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))
    OTP_MAX_RESENDS = int(os.getenv("OTP_MAX_RESENDS", "3"))  # per password login

    # Simple IP rate limits for the unauthenticated auth endpoints
    RATE_LIMIT_WINDOW_SECONDS = 60      # window size
    LOGIN_RATE_MAX_REQUESTS = 15        # max requests per IP per window
    VERIFY_OTP_RATE_MAX_REQUESTS = 15
    RESEND_OTP_RATE_MAX_REQUESTS = 5

    # Trusted device cookie
    DEVICE_COOKIE_NAME = "device_token"
    DEVICE_COOKIE_MAX_AGE = 365 * 24 * 60 * 60  # 1 year
    DEVICE_COOKIE_SECURE = os.getenv("DEVICE_COOKIE_SECURE", "true").lower() == "true"

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_SENDER_NAME = os.getenv("SMTP_SENDER_NAME", "AutoClient")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
