#!/usr/bin/env python3
"""
FileDrop: Self-hosted HTTP File Drop Server

A small web server for dropping files onto a host: clients upload files
(optionally keeping their folder structure), list them, download them and
delete them. An optional single-admin login gates every file operation
behind a bearer token derived from the stored credentials.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth_gate import AuthGate
from credential_store import CredentialBackend, CredentialStore, FileCredentialBackend, check_credentials
from drop_config import DEFAULT_SECRET_KEY, AppConfig, configure_logging, load_config, parse_size
from drop_errors import (
    AlreadyConfigured,
    DropError,
    InternalError,
    NotFound,
    SetupRequired,
    Unauthorized,
    ValidationError,
)
from file_handlers import DeleteHandler, UploadHandler
from file_tree import FileTreeLister
from path_sanitizer import resolve_within
from token_service import TokenService

__version__ = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads"


# ============================================================================
# Request Models
# ============================================================================

class CredentialsRequest(BaseModel):
    """Setup/login request; fields are checked by the handlers"""
    username: Optional[str] = None
    password: Optional[str] = None


def require_fields(body: Optional[CredentialsRequest]) -> CredentialsRequest:
    if body is None or not body.username or not body.password:
        raise ValidationError("Username and password required")
    return body


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(config: Optional[AppConfig] = None,
               credential_backend: Optional[CredentialBackend] = None) -> FastAPI:
    """
    Build the application for one configuration.

    Args:
        config: Effective configuration; defaults when None
        credential_backend: Override for the credential file (tests)

    Returns:
        FastAPI application with all routes registered
    """
    config = config or AppConfig()
    nested = config.server.nested_paths

    upload_root = Path(config.server.upload_dir)
    upload_root.mkdir(parents=True, exist_ok=True)

    store = CredentialStore(
        credential_backend or FileCredentialBackend(config.security.credentials_path),
        config.security
    )
    tokens = TokenService(config.security.secret_key)
    gate = AuthGate(store, tokens, enabled=config.security.auth_enabled)
    lister = FileTreeLister(upload_root, url_prefix=UPLOADS_PREFIX)
    uploader = UploadHandler(config.server, url_prefix=UPLOADS_PREFIX)
    deleter = DeleteHandler(config.server)
    upload_field = "files" if nested else "file"

    app = FastAPI(
        title="FileDrop - Self-hosted File Drop Server",
        description="Upload, list, download and delete files with optional single-admin login",
        version=__version__
    )
    app.state.config = config
    app.state.credentials = store
    app.state.tokens = tokens

    # ------------------------------------------------------------------------
    # Error responses
    # ------------------------------------------------------------------------

    @app.exception_handler(DropError)
    async def drop_error_handler(_request: Request, exc: DropError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError):
        logger.debug(f"Invalid request: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Unexpected error"})

    # ------------------------------------------------------------------------
    # Health and authentication
    # ------------------------------------------------------------------------

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.get("/api/auth/state")
    def auth_state():
        """Whether admin credentials are configured"""
        return {"configured": store.is_configured()}

    @app.post("/api/auth/setup")
    def auth_setup(body: Optional[CredentialsRequest] = None):
        """Create the admin credentials on first run"""
        if store.is_configured():
            raise AlreadyConfigured()
        body = require_fields(body)
        record = store.setup(body.username, body.password)
        return {"token": tokens.token_for(record)}

    @app.post("/api/login")
    def login(body: Optional[CredentialsRequest] = None):
        """Exchange username and password for the bearer token"""
        record = store.get_or_bootstrap()
        if record is None:
            raise SetupRequired()
        body = require_fields(body)
        if not check_credentials(record, body.username, body.password):
            logger.warning(f"Failed login for '{body.username}'")
            raise Unauthorized("Invalid credentials")
        return {"token": tokens.token_for(record)}

    # ------------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------------

    @app.get("/api/files", dependencies=[Depends(gate)])
    def list_files():
        """List uploaded files"""
        try:
            upload_root.mkdir(parents=True, exist_ok=True)
            if nested:
                return {"tree": [entry.model_dump(exclude_none=True) for entry in lister.list_tree()]}
            return {"files": [entry.model_dump() for entry in lister.list_flat()]}
        except OSError as e:
            logger.exception(f"Could not list files: {e}")
            raise InternalError("Could not list files") from e

    @app.post("/api/upload", dependencies=[Depends(gate)])
    async def upload_files(request: Request):
        """Multipart upload; field ``files`` (nested) or ``file`` (flat)"""
        form = await request.form()
        try:
            uploads = [item for item in form.getlist(upload_field) if isinstance(item, UploadFile)]
            stored = await uploader.store(uploads)
        finally:
            await form.close()
        return {"files": stored}

    if nested:
        @app.delete("/api/files", dependencies=[Depends(gate)])
        async def delete_file(path: str = Query("")):
            """Delete one file by relative path"""
            await deleter.delete(path)
            return {"ok": True}
    else:
        @app.delete("/api/files/{name:path}", dependencies=[Depends(gate)])
        async def delete_file(name: str):
            """Delete one file by name"""
            await deleter.delete(name)
            return {"ok": True}

    @app.get(UPLOADS_PREFIX + "/{file_path:path}", dependencies=[Depends(gate)])
    def download_file(file_path: str):
        """Serve an uploaded file"""
        target = resolve_within(upload_root, file_path)
        if target is None or not target.is_file():
            raise NotFound("Not found")
        return FileResponse(
            path=str(target),
            headers={"Cache-Control": f"public, max-age={config.server.download_max_age}"}
        )

    # Frontend assets; mounted last so API routes take precedence
    if config.server.public_dir:
        app.mount("/", StaticFiles(directory=config.server.public_dir, html=True), name="public")

    return app


# ============================================================================
# CLI and Main
# ============================================================================

def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="FileDrop - Self-hosted File Drop Server"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file (YAML)"
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind to (default: 3000)"
    )
    parser.add_argument(
        "--upload-dir",
        type=str,
        help="Directory to store uploads (default: ./uploads)"
    )
    parser.add_argument(
        "--max-file-size",
        type=str,
        help="Maximum file size (default: 50MB)"
    )
    parser.add_argument(
        "--flat",
        action="store_true",
        help="Store every upload directly in the upload directory under a unique name"
    )
    parser.add_argument(
        "--no-auth",
        action="store_true",
        help="Disable authentication"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    # Load configuration: defaults < YAML file < environment < command line
    config = load_config(args.config)
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.upload_dir:
        config.server.upload_dir = args.upload_dir
    if args.max_file_size:
        config.server.max_file_size = parse_size(args.max_file_size)
    if args.flat:
        config.server.nested_paths = False
    if args.no_auth:
        config.security.auth_enabled = False
    if args.log_level:
        config.logging.level = args.log_level

    configure_logging(config.logging)

    if config.security.auth_enabled and config.security.secret_key == DEFAULT_SECRET_KEY:
        logger.warning("AUTH_SECRET is not set; tokens are signed with the default secret")

    app = create_app(config)

    # Log configuration
    logger.info("=" * 60)
    logger.info("FileDrop - Self-hosted File Drop Server")
    logger.info("=" * 60)
    logger.info(f"Host: {config.server.host}")
    logger.info(f"Port: {config.server.port}")
    logger.info(f"Upload Directory: {config.server.upload_dir}")
    logger.info(f"Max File Size: {config.server.max_file_size} bytes")
    logger.info(f"Folder Uploads: {'Enabled' if config.server.nested_paths else 'Disabled'}")
    logger.info(f"Authentication: {'Enabled' if config.security.auth_enabled else 'Disabled'}")
    if config.security.auth_enabled:
        logger.info(f"Credentials File: {config.security.credentials_path}")
    logger.info("=" * 60)
    logger.info(f"File upload server listening on port {config.server.port}")
    logger.info("=" * 60)

    # Run server
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower()
    )


if __name__ == "__main__":
    main()
