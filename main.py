from fastapi import FastAPI
import os
import logging
from datetime import datetime
from fastapi.middleware.cors import CORSMiddleware

from admin_routes import router as admin_router
from config import get_settings


settings = get_settings()

# Create logs directory if it doesn't exist
log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Excel Admin Upload API",
    description="Admin endpoint for uploading Excel files into the ingestion pipeline",
    version="1.2.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router)


@app.get("/health", tags=["Health"])
async def health():
    """Liveness check for the hosting platform."""
    return {"status": "ok"}


logger.info(
    f"Upload size policy: {settings.deployment_context.value} context, "
    f"configured limit {settings.max_file_size_mb}MB"
)


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Excel Admin Upload API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
