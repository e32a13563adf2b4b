# backend/config.py
import os
from dotenv import load_dotenv
import datetime

basedir = os.path.abspath(os.path.dirname(__file__))
dotenv_path = os.path.join(basedir, '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    print("Info: .env file not found. Relying on system environment variables.")


def _split_origins(value):
    return [origin.strip() for origin in (value or '').split(',') if origin.strip()]


class Config:
    """Base configuration."""
    # Also signs the JWT access tokens
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-insecure-fallback-key-for-dev-only'

    # Comma-separated list, e.g. "https://shop.example.com,https://admin.example.com"
    CORS_ORIGINS = _split_origins(os.environ.get('FRONTEND_URL')) or ['http://localhost:5173']

    # --- MongoDB Config ---
    MONGO_URI = os.environ.get('MONGO_URI')
    MONGO_DB_NAME = os.environ.get('MONGO_DB_NAME')

    if not MONGO_URI:
        print("CRITICAL WARNING: MONGO_URI environment variable not set!")
    if not MONGO_DB_NAME:
        print("CRITICAL WARNING: MONGO_DB_NAME environment variable not set!")

    # --- Auth ---
    JWT_EXPIRATION_DELTA = datetime.timedelta(days=int(os.environ.get('JWT_EXPIRE_DAYS', 30)))
    BCRYPT_LOG_ROUNDS = 12

    # --- Uploads ---
    # 'base64' returns data URIs, 'disk' stores files under UPLOAD_FOLDER
    UPLOAD_STORAGE = os.environ.get('UPLOAD_STORAGE', 'base64')
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or os.path.join(basedir, 'uploads')
    ALLOWED_IMAGE_EXTENSIONS = {'jpeg', 'jpg', 'png', 'gif', 'webp'}
    MAX_IMAGE_SIZE = 5 * 1024 * 1024
    MAX_UPLOAD_FILES = 10
    # Request body ceiling: a full multi-upload plus form overhead
    MAX_CONTENT_LENGTH = 60 * 1024 * 1024
    BASE_URL = os.environ.get('BASE_URL')

    # --- Dashboard ---
    LOW_STOCK_THRESHOLD = 10

    # --- Admin seed (flask seed_admin) ---
    ADMIN_NAME = os.environ.get('ADMIN_NAME', 'Admin')
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@example.com')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    # Use a distinct testing database
    MONGO_URI = os.environ.get('TEST_MONGO_URI') or 'mongodb://localhost:27017/'
    MONGO_DB_NAME = os.environ.get('TEST_MONGO_DB_NAME') or 'test_storefront_db'
    SECRET_KEY = 'test-secret-key'
    # Keep hashing fast in tests
    BCRYPT_LOG_ROUNDS = 4
    UPLOAD_STORAGE = 'base64'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    # SECRET_KEY MUST be set via environment variable in production
    if Config.SECRET_KEY == 'a-very-insecure-fallback-key-for-dev-only':
        print("CRITICAL SECURITY WARNING: Default SECRET_KEY is being used in production!")


# Dictionary to access config classes by name
config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig # Default to Development if FLASK_ENV is not set
}
