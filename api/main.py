import sys, os, uvicorn, logging
from contextlib import asynccontextmanager
from typing import Optional, Protocol, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import settings
from services.rfp_desk import RfpDesk, build_desk, init_schemas
from api.routers import proposals, rfps

LOG_DIR = os.path.join(os.path.dirname(__file__), '..', 'logs')
os.makedirs(LOG_DIR, exist_ok=True)
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                    handlers=[logging.StreamHandler(), logging.FileHandler(os.path.join(LOG_DIR, "rfp_desk.log"))])
logger = logging.getLogger(__name__)


class RfpDeskAppState(Protocol):
    desk: Optional["RfpDesk"]
    polling_owned: bool


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    state = cast(RfpDeskAppState, app.state)
    state.polling_owned = False
    try:
        init_schemas()
        desk = build_desk(config=settings)
        state.desk = desk
        if settings.email_polling_enabled and desk.poller.configured:
            desk.poller.start()
            state.polling_owned = True
            logger.info("Mailbox polling every %d minute(s)", settings.email_poll_minutes)
        logger.info("System initialized successfully.")
    except Exception as e:
        logger.critical(f"FATAL: System initialization failed: {e}", exc_info=True)
        state.desk = None
    yield
    desk = getattr(state, "desk", None)
    if desk is not None and getattr(state, "polling_owned", False):
        try:
            desk.poller.stop()
        except Exception:  # pragma: no cover
            logger.exception("Failed to stop mailbox polling during shutdown")
    state.desk = None
    state.polling_owned = False
    logger.info("API shutting down.")

app = FastAPI(title="RFP Desk API", version="1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

app.include_router(rfps.router)
app.include_router(proposals.router)

@app.get("/", tags=["General"])
def read_root(): return {"message": "Welcome to the RFP Desk API"}

if __name__ == "__main__":
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
