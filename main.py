# main.py
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from healthmate import config
from healthmate import auth as auth_router
from healthmate import users as users_router
from healthmate import reports as reports_router
from healthmate import vitals as vitals_router
from healthmate import chat as chat_router
from healthmate import dashboard as dashboard_router
from healthmate.database import Base, engine
from healthmate.errors import register_error_handlers
from healthmate.gemini import GeminiService
from healthmate.mailer import Mailer
from healthmate.utils import utcnow

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    os.makedirs(os.path.join(config.UPLOAD_DIR, "reports"), exist_ok=True)
    os.makedirs(os.path.join(config.UPLOAD_DIR, "profiles"), exist_ok=True)
    app.state.ai = GeminiService.from_config()
    app.state.mailer = Mailer.from_config()
    logger.info("HealthMate API started")
    yield


app = FastAPI(title="HealthMate API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")

app.include_router(auth_router.router, prefix="/api")
app.include_router(users_router.router, prefix="/api")
app.include_router(dashboard_router.router, prefix="/api")
app.include_router(reports_router.router, prefix="/api")
app.include_router(vitals_router.router, prefix="/api")
app.include_router(chat_router.router, prefix="/api")


@app.get("/health")
def health():
    return {"success": True, "message": "Server is running", "timestamp": utcnow().isoformat() + "Z"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 5000))
    uvicorn.run(app, host="0.0.0.0", port=port)
