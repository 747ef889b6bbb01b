"""
ChatCoach Backend API
Chat sessions, demo onboarding and AI coaching
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from chatcoach.api.routes import auth, config, files, health, messages, profiles, sessions, translate
from chatcoach.core.config import settings
from chatcoach.core.database import engine
from chatcoach.models import Base
from chatcoach.middleware.logging import StructuredLoggingMiddleware
from chatcoach.middleware.error_handling import ErrorHandlingMiddleware, register_exception_handlers
import logging

app = FastAPI(
    title="ChatCoach API",
    description="Chat sessions, demo onboarding and AI coaching",
    version="1.0.0"
)

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

@app.on_event("startup")
def startup_event():
    """Create database tables on startup"""
    logging.info("Starting database initialization...")

    if not settings.llm_api_key or not settings.llm_api_key.strip():
        logging.warning(
            "LLM API key is not configured. "
            "Set the LLM_API_KEY environment variable; consult and translate will fail without it."
        )

    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logging.error(f"Database initialization failed: {str(e)}")
        raise RuntimeError(f"Failed to initialize database: {str(e)}") from e
    logging.info("Database tables created successfully")

# Add middleware (order matters - last added is first executed)
# Error handling sits inside logging so failures still get a correlation id
app.add_middleware(ErrorHandlingMiddleware)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["authentication"])
app.include_router(sessions.router, prefix="/api", tags=["sessions"])
app.include_router(messages.router, prefix="/api", tags=["messages"])
app.include_router(translate.router, prefix="/api", tags=["translate"])
app.include_router(profiles.router, prefix="/api", tags=["profiles"])
app.include_router(files.router, prefix="/api", tags=["files"])
app.include_router(config.router, prefix="/api", tags=["config"])
app.include_router(health.router, tags=["health"])
