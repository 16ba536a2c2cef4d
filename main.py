from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from dotenv import load_dotenv
import logging

from app.core.config import settings
from app.api.v1.api import api_router

# Load environment variables
load_dotenv()

logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)

# Configure audit logger (JSON lines)
audit_logger = logging.getLogger("audit")
if not audit_logger.handlers:
    handler = logging.StreamHandler()
    # Keep raw JSON line without extra prefixes
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
audit_logger.setLevel(logging.INFO)
# Do not propagate to root to avoid duplication
audit_logger.propagate = False

api_description = """
## Budget Periods API

Budget lifecycle for personal finance: plan income and expenses per
category for a weekly, monthly, yearly or custom period, track actuals
against the plan, and roll budgets forward into the next period.

### Lifecycle

`draft` → `pending_approval` → `active` → `completed`

A draft can be approved directly when approval is not required.

### Key Endpoints

- `POST /budgets/` - Create a draft budget with category allocations
- `POST /budgets/{id}/recalculate` - Refresh actuals from transactions
- `POST /budgets/{id}/next-period` - Create next period, with rollover
- `GET /budgets/{id}/performance` - Planned vs actual report
"""

app = FastAPI(
    title="Budget Periods API",
    description=api_description,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# GZip compression for large JSON responses
app.add_middleware(GZipMiddleware, minimum_size=500)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "Budget Periods API is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
