# app/api/v1/router.py
from fastapi import APIRouter
from app.modules.users.router import router as users_router
from app.modules.class_requests.router import router as class_requests_router
from app.modules.transactions.router import router as transactions_router

api_router = APIRouter()

api_router.include_router(users_router,          prefix="/users",          tags=["users"])
api_router.include_router(class_requests_router, prefix="/class-requests", tags=["class-requests"])
api_router.include_router(transactions_router,   prefix="/transactions",   tags=["transactions"])
