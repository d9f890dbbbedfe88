import json
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

# Load environment variables from .env file for local development
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from core.config import Settings, settings as default_settings
from core.middleware import install_middleware
from core.errors import install_handlers
from core.websocket import create_socket_server, wrap_with_socketio
from modules.family_inventory import FamilySyncHub, rest_router, ws_router
from modules.family_inventory.repo import InventoryRepo, build_repo

logger = logging.getLogger(__name__)

NULL_SENTINELS = {"null", "none", "undefined", "false", "0"}

API = '/api/v1'


def _normalize_origin(origin: str) -> Optional[str]:
    sanitized = origin.strip().rstrip('/')
    if not sanitized:
        return None
    if sanitized.lower() in NULL_SENTINELS:
        return None
    return sanitized


def parse_origins(raw: Optional[str]) -> List[str]:
    """
    Accepts:
      - JSON array: '["https://a.com","https://b.com"]'
      - Comma-separated string: 'https://a.com,https://b.com'
      - Empty / missing -> []
    Never raises; always returns a list[str].
    """
    raw = (raw or '').strip()
    if not raw:
        return []

    # First check if it looks like JSON (starts with '[')
    if raw.startswith('['):
        try:
            val = json.loads(raw)
            if isinstance(val, list):
                origins = [_normalize_origin(str(x)) for x in val]
                return [o for o in origins if o]
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️  ALLOW_ORIGINS JSON parse error: {e}, falling back to comma-separated")

    # Fallback: comma-separated
    fallback = [_normalize_origin(p) for p in raw.split(',')]
    return [p for p in fallback if p]


def parse_origin_regex(raw: Optional[str]) -> Optional[str]:
    """
    Returns a string pattern or None. Empty strings are treated as None.
    Cleans up common regex mistakes for CORS origin matching.
    """
    patt = (raw or '').strip().strip('"').strip("'")
    if not patt or patt.lower() in NULL_SENTINELS:
        return None

    # Remove anchors and path patterns - CORS only matches origin (protocol + domain)
    patt = patt.lstrip('^')
    if '(/.*' in patt:
        patt = patt.split('(/.*')[0]
    patt = patt.rstrip('$')
    return patt or None


def _install_cors(app: FastAPI, cfg: Settings):
    allow_origins = parse_origins(cfg.ALLOW_ORIGINS)
    allow_origin_regex = parse_origin_regex(cfg.ALLOW_ORIGIN_REGEX)

    # Add common development origins if not specified
    if not allow_origins and not allow_origin_regex:
        allow_origins = [
            "http://localhost:3000",
            "http://localhost:5000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5000",
        ]
        logger.info("🔧 Using default CORS origins for development")

    logger.info(f"🌍 CORS: {len(allow_origins)} origin(s), regex={'yes' if allow_origin_regex else 'no'}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(cfg: Optional[Settings] = None, repo: Optional[InventoryRepo] = None) -> FastAPI:
    """Build the FastAPI app with its own FamilySyncHub on app.state.hub.

    The socket.io server is bound to the same hub and kept on app.state.sio;
    wrap_with_socketio() turns the pair into the served ASGI app.
    """
    cfg = cfg or default_settings
    repo = repo or build_repo(cfg)
    hub = FamilySyncHub.from_settings(repo, cfg)
    boot_t0 = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cfg.resolved_store_backend() == "postgres":
            # --- Database Initialization ---
            from core.db import initialize_database
            if not initialize_database(cfg):
                logger.warning("⚠️  Application will continue but may not function properly")
        yield
        await hub.close()

    app = FastAPI(
        title='Family Inventory Sync API',
        version='1.0.0',
        docs_url='/api/docs',
        openapi_url='/api/openapi.json',
        lifespan=lifespan,
    )
    app.state.hub = hub
    app.state.settings = cfg

    _install_cors(app, cfg)

    # --- GZip Compression (for faster data transfer) ---
    app.add_middleware(GZipMiddleware, minimum_size=1000, compresslevel=6)

    # --- Middleware & error handlers ---
    install_middleware(app)   # request logging
    install_handlers(app)     # AppError → JSON

    # --- Health ---
    @app.get('/api/health')
    def health():
        return {
            'status': 'ok',
            'uptime': round(time.time() - boot_t0, 2),
            'store': cfg.resolved_store_backend(),
        }

    # --- Routers ---
    app.include_router(rest_router, prefix=f'{API}/families', tags=['families'])
    app.include_router(ws_router, tags=['live-sync'])

    app.state.sio = create_socket_server(hub, cfg)
    return app


fastapi_app = create_app()  # Keep reference for wrapping/testing

# --- WebSocket Integration (After All Middleware) ---
# Wrap the FastAPI app with Socket.IO for real-time communication
app = wrap_with_socketio(fastapi_app.state.sio, fastapi_app)
logger.info(f"✅ WebSocket support enabled at /{default_settings.SOCKETIO_PATH} and /ws")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host=default_settings.HOST, port=default_settings.PORT, reload=default_settings.RELOAD)
