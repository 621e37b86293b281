"""
DCLense - Configuration and shared helpers

The MongoDB client is not a module singleton: server.py creates it on startup,
stores it on app.state and routes receive it through get_db().
"""

import os
import uuid
import hashlib
import secrets
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from fastapi import Request
from pathlib import Path

# Load .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'dclense')

# Application
APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:3000')
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
CRON_SECRET = os.environ.get('CRON_SECRET', '')

# Email
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'reminders@dclense.app')
CONTACT_EMAIL = os.environ.get('CONTACT_EMAIL', 'contact@dclense.app')

# Daily reminders
REMINDER_TIMEZONE = os.environ.get('REMINDER_TIMEZONE', 'Europe/Belgrade')
REMINDER_HOUR = int(os.environ.get('REMINDER_HOUR', '8'))

# Realtime / pagination
REALTIME_RESYNC_SECONDS = float(os.environ.get('REALTIME_RESYNC_SECONDS', '300'))
PAGE_SIZE_DEFAULT = int(os.environ.get('PAGE_SIZE_DEFAULT', '50'))

SESSION_DAYS = 7


# ==================== DATABASE ====================

def create_db_client(mongo_url: str = None) -> AsyncIOMotorClient:
    """Build the MongoDB client. Called once, on startup."""
    return AsyncIOMotorClient(mongo_url or MONGO_URL)


def get_database(client: AsyncIOMotorClient, db_name: str = None):
    return client[db_name or DB_NAME]


def get_db(request: Request):
    """FastAPI dependency: the database bound to the running app"""
    return request.app.state.db


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash a password with SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()


def generate_token() -> str:
    """Secure session token"""
    return secrets.token_urlsafe(32)


def new_id() -> str:
    """Document id, also used as the Mongo _id so change streams map back to it"""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC datetime as ISO string"""
    return datetime.now(timezone.utc).isoformat()
