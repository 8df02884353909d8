"""
fibengine Main module - CLI and API server
"""

import contextlib
import logging
import threading
from typing import Any, Optional
import time

import typer
import uvicorn
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRouter
from pydantic import BaseModel

from fibengine.config import resolve_limits
from fibengine.device import FibonacciDevice, SeekMode
from fibengine.error_msg import (
    BusyError,
    CapacityExceeded,
    FibEngineError,
    InvalidIndex,
    InvalidSession,
    ServiceUnavailable,
)
from fibengine.features import FeatureRegistry, Feature, OperationResult
from fibengine.version import get_version

# Module-level logger
logger = logging.getLogger("fibengine.main")

BUSY_EXIT_CODE = 2


# Create CLI app with Typer
app = typer.Typer(
    name="fibengine",
    help="fibengine - exact Fibonacci numbers behind an exclusive session",
    add_completion=False,
)


# ----------------- Device lifecycle -----------------

_device: Optional[FibonacciDevice] = None
_device_lock = threading.Lock()


def get_device() -> FibonacciDevice:
    """Return the process-wide device, creating it on first use"""
    global _device
    with _device_lock:
        if _device is None:
            _device = FibonacciDevice(limits=resolve_limits())
            logger.info("fibengine device ready (max index %d)", _device.max_index)
        return _device


def stop_device() -> None:
    """Shut the device down; it stays in place so later opens fail."""
    with _device_lock:
        if _device is not None:
            _device.shutdown()


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the application lifespan"""
    get_device()
    yield
    stop_device()


# Create FastAPI app for API server
api_app = FastAPI(
    title="fibengine API",
    description="Exact Fibonacci numbers addressed through an exclusive session cursor",
    version=get_version(),
    lifespan=lifespan,
)

# Add CORS middleware
api_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API router for versioned endpoints
api_router = APIRouter(prefix="/api/v1")


# Request models
class SeekRequest(BaseModel):
    offset: int
    whence: str = "set"


class WriteRequest(BaseModel):
    data: str = ""


# ----------------- Helper Functions -----------------


class ElapsedMsFormatter(logging.Formatter):
    """Formatter that shows milliseconds since program start, right-aligned for up to 9999 seconds."""
    def __init__(self, fmt=None, datefmt=None, *args, **kwargs):
        super().__init__(fmt, datefmt, *args, **kwargs)
        self.start_time = time.monotonic()
        self.width = 8  # Enough for '9999000ms'

    def format(self, record):
        elapsed_ms = int((time.monotonic() - self.start_time) * 1000)
        if elapsed_ms < 10**7:
            elapsed = f"[{elapsed_ms:>{self.width}}ms]"
        else:
            elapsed = f"[{elapsed_ms}ms]"
        record.elapsed = elapsed
        return super().format(record)


VERBOSE_LEVEL = 15  # Between INFO (20) and DEBUG (10)
logging.addLevelName(VERBOSE_LEVEL, "VERBOSE")

def verbose(self, message, *args, **kwargs):
    if self.isEnabledFor(VERBOSE_LEVEL):
        self._log(VERBOSE_LEVEL, message, args, **kwargs)
logging.Logger.verbose = verbose  # type: ignore[attr-defined]


def setup_logging(debug: bool = False, verbose: bool = False) -> None:
    """Set up logging configuration"""
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = VERBOSE_LEVEL
    else:
        log_level = logging.INFO
    formatter = ElapsedMsFormatter('%(elapsed)s %(message)s')
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = []  # Remove any existing handlers
    root.addHandler(handler)
    root.setLevel(log_level)

    # Keep the access log quiet unless debugging
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if debug else logging.WARNING)


def _feature_or_exit(feature_name: str) -> Feature:
    feature = FeatureRegistry.get_feature(feature_name)
    if not feature:
        logger.error("Unknown feature: %s", feature_name)
        raise typer.Exit(code=1)
    return feature


def _handle_cli_result(feature_name: str, result: OperationResult) -> Any:
    if not result.success:
        logger.error("Operation %s failed: %s", feature_name, result.error or "Unknown error")
        raise typer.Exit(code=BUSY_EXIT_CODE if result.busy else 1)
    return result.data


def handle_cli_feature(feature_name: str, **kwargs: Any) -> Any:
    """Handle a CLI feature execution"""
    feature = _feature_or_exit(feature_name)
    try:
        result = feature.handler(**kwargs)
    except Exception as e:
        logger.exception("Unexpected error")
        raise typer.Exit(code=1) from e
    return _handle_cli_result(feature_name, result)


# ----------------- CLI Commands -----------------


@app.command()
def version() -> None:
    """Show the fibengine version"""
    setup_logging(False)
    data = handle_cli_feature("version")
    logger.info("fibengine version: %s", data.get("version", "unknown"))


@app.command()
def read(
    index: int = typer.Argument(..., help="Seek offset selecting the Fibonacci index"),
    whence: str = typer.Option("set", help="Seek origin: set, cur or end"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging (between info and debug)"),
) -> None:
    """Read the exact Fibonacci value at a cursor position"""
    setup_logging(debug, verbose)
    data = handle_cli_feature("read", index=index, whence=whence)
    logger.verbose("F(%d) has %d digits", data["index"], data["length"])  # type: ignore[attr-defined]
    print(data["value"])


@app.command()
def fast(
    index: int = typer.Argument(..., help="Fibonacci index"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
) -> None:
    """Compute a Fibonacci value with 64-bit fast doubling"""
    setup_logging(debug)
    data = handle_cli_feature("fast", index=index)
    if not data["exact"]:
        logger.warning("Index %d exceeds the 64-bit range; the value has wrapped", index)
    print(data["value"])


@app.command()
def sequence(
    upto: Optional[int] = typer.Option(None, help="Last index to read (default: the maximum index)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
) -> None:
    """Read every Fibonacci value from index 0 upwards"""
    setup_logging(debug)
    data = handle_cli_feature("sequence", upto=upto)
    for item in data:
        print(f"Reading from fibengine at offset {item['index']}, returned the sequence {item['value']}.")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind the API server"),
    port: int = typer.Option(8000, help="Port to bind the API server"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
):
    """Start the fibengine API server"""
    setup_logging(debug)

    logger.info(
        f"Starting fibengine API server version {get_version()} on {host}:{port}"
    )
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(api_app, host=host, port=port)


# ----------------- API Endpoints -----------------


def _http_error(e: FibEngineError) -> HTTPException:
    if isinstance(e, BusyError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, InvalidSession):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, InvalidIndex):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, CapacityExceeded):
        code = status.HTTP_507_INSUFFICIENT_STORAGE
    elif isinstance(e, ServiceUnavailable):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(e))


@api_router.get("/version")
async def get_version_endpoint():
    """Get fibengine version"""
    feature = FeatureRegistry.get_feature("version")
    if not feature:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Version feature not found",
        )
    result = feature.handler()
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.error or "An error occurred",
        )
    return result.data


@api_router.get("/fast/{index}")
async def fast_endpoint(index: int):
    """Compute F(index) with 64-bit fast doubling"""
    feature = FeatureRegistry.get_feature("fast")
    if not feature:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fast feature not found",
        )
    result = feature.handler(index=index)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.error or "An error occurred",
        )
    return result.data


@api_router.post("/sessions")
def open_session():
    """Acquire the exclusive session"""
    try:
        handle = get_device().open()
    except FibEngineError as e:
        raise _http_error(e) from e
    return {"session_id": handle.session_id, "cursor": handle.cursor}


@api_router.delete("/sessions/{session_id}")
def close_session(session_id: str):
    """Release the exclusive session"""
    device = get_device()
    try:
        device.close(device.get_handle(session_id))
    except FibEngineError as e:
        raise _http_error(e) from e
    return {"closed": True}


@api_router.post("/sessions/{session_id}/seek")
def seek_session(session_id: str, request: SeekRequest):
    """Move the session cursor"""
    device = get_device()
    try:
        whence = SeekMode.parse(request.whence)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    try:
        cursor = device.seek(device.get_handle(session_id), request.offset, whence)
    except FibEngineError as e:
        raise _http_error(e) from e
    return {"cursor": cursor}


@api_router.get("/sessions/{session_id}/read")
def read_session(session_id: str):
    """Compute the Fibonacci value at the session cursor"""
    device = get_device()
    try:
        result = device.read_value(device.get_handle(session_id))
    except FibEngineError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error("Error in read endpoint: %s", str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e
    return {"index": result.index, "value": result.text, "length": result.length}


@api_router.post("/sessions/{session_id}/write")
def write_session(session_id: str, request: WriteRequest):
    """Accepted and ignored"""
    device = get_device()
    try:
        written = device.write(device.get_handle(session_id), request.data.encode())
    except FibEngineError as e:
        raise _http_error(e) from e
    return {"written": written}


# Include the router in the FastAPI app
api_app.include_router(api_router)


if __name__ == "__main__":
    app()
