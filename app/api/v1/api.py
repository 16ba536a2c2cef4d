from fastapi import APIRouter
from app.api.v1.endpoints import budgets

api_router = APIRouter()

api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
