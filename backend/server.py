"""
DCLense - API Backend
Lead / client CRM with live-updating lists.

Start with:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS, create_db_client, get_database
from scheduler_service import task_scheduler
from services.channels import ChannelManager

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("dclense")

app = FastAPI(
    title="DCLense",
    description="Lead and client CRM",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ROUTES ====================

from routes import (
    auth, companies, representatives, reminders, csv_io, logs, stats, realtime, candidates, contact,
)

# Routes with the /api prefix
app.include_router(auth.router, prefix="/api")
app.include_router(companies.router, prefix="/api")
app.include_router(representatives.router, prefix="/api")
app.include_router(reminders.router, prefix="/api")
app.include_router(csv_io.router, prefix="/api")
app.include_router(logs.router, prefix="/api")
app.include_router(stats.router, prefix="/api")
app.include_router(realtime.router, prefix="/api")
app.include_router(candidates.router, prefix="/api")
app.include_router(contact.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "DCLense API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

async def create_indexes(db):
    await db.users.create_index("email", unique=True)
    await db.users.create_index("id", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")

    await db.companies.create_index("id", unique=True)
    await db.companies.create_index("company_name")
    await db.companies.create_index([("is_deleted", 1), ("created_at", -1)])
    await db.companies.create_index("assigned_to")

    await db.representatives.create_index("id", unique=True)
    await db.representatives.create_index("company_id")
    await db.representatives.create_index([("is_deleted", 1), ("created_at", -1)])
    await db.representatives.create_index("assigned_to")
    await db.representatives.create_index("reminder_date")

    await db.user_reads.create_index([("user_id", 1), ("company_id", 1)])
    await db.user_reads.create_index([("user_id", 1), ("representative_id", 1)])
    await db.user_exports.create_index([("user_id", 1), ("representative_id", 1)], unique=True)

    await db.notifications.create_index([("user_id", 1), ("created_at", -1)])
    await db.csv_templates.create_index("template_type")
    await db.candidates.create_index("id", unique=True)

    await db.audit_logs.create_index("created_at")
    await db.system_logs.create_index("created_at")
    await db.export_logs.create_index("created_at")


@app.on_event("startup")
async def startup():
    client = create_db_client()
    db = get_database(client)
    app.state.mongo_client = client
    app.state.db = db
    app.state.channels = ChannelManager(db)

    await create_indexes(db)
    logger.info("✅ MongoDB indexes created")

    task_scheduler.start(db)
    logger.info("🚀 DCLense started")


@app.on_event("shutdown")
async def shutdown():
    await app.state.channels.close_all()
    task_scheduler.stop()
    app.state.mongo_client.close()
    logger.info("DCLense stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
