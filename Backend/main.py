from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from distro.api import releases, tracks
from distro.core.config import settings
from distro.core.exceptions import PanelException
import traceback
import logging
import uvicorn # For running programmatically
import os



# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("distro")
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

app = FastAPI(title="Distro Panel API", debug=not settings.is_production)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(exc: Exception, error) -> dict:
    content = {"success": False, "error": error}
    if not settings.is_production:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return jsonable_encoder(content)


@app.exception_handler(PanelException)
async def panel_exception_handler(request: Request, exc: PanelException):
    logger.warning(f"{request.method} {request.url.path} failed with {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc, exc.detail),
        headers=exc.headers,
    )


# Add exception handler for detailed error responses
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_detail = traceback.format_exc()
    logger.error(f"Unhandled exception: {str(exc)}\n{error_detail}")
    return JSONResponse(
        status_code=500,
        content=_error_body(exc, str(exc) or "Error interno del servidor"),
    )

# Include routes
app.include_router(tracks.router, prefix="/api", tags=["tracks"])
app.include_router(releases.router, prefix="/api", tags=["releases"])


@app.get("/")
async def root():
    return {"message": "Distro Panel API"}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port, log_level="info")
