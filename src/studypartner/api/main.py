"""FastAPI application for the AI study-partner backend."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import intent_router, sessions_router

app = FastAPI(
    title="Study Partner API",
    description="AI study-partner session lifecycle, proactive prompts and answer guard",
    version="0.1.0",
)

# Configure CORS for the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        # Local development
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sessions_router)
app.include_router(intent_router)


@app.get("/")
def root() -> dict:
    """Root endpoint."""
    return {"message": "Study Partner API", "version": "0.1.0"}


@app.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}
