from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
from contextlib import asynccontextmanager
import os
import logging
from pathlib import Path

from bootstrap import run_bootstrap_migrations
from rate_limit import limiter, rate_limit_exceeded_handler
from routers import admin, public

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.environ.get("RUN_BOOTSTRAP_ON_STARTUP", "true").lower() == "true":
        run_bootstrap_migrations()
        logger.info("Bootstrap completed on startup")
    yield


app = FastAPI(title="Innovate-X 2025 API", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
api_router = APIRouter(prefix="/api")


@api_router.get("/")
async def root():
    return {"message": "Innovate-X 2025 API"}


@api_router.get("/health")
async def health():
    return {"status": "healthy"}


api_router.include_router(public.router)
api_router.include_router(admin.router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SlowAPIMiddleware)

# Only rewrite the client address from X-Forwarded-For when it comes from a known proxy.
trusted_proxies = os.environ.get("TRUSTED_PROXY_IPS", "").strip()
if trusted_proxies:
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=[ip.strip() for ip in trusted_proxies.split(",") if ip.strip()])
