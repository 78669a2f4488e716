from fastapi import APIRouter

# Public: showtimes & seat map
from cinebook.api.v1.public.showtimes import router as showtimes_router

# Public: bookings
from cinebook.api.v1.public.bookings import router as bookings_router

# Public: checkout, provider webhooks, scheduler trigger
from cinebook.api.v1.public.payments import (
    checkout_router,
    webhook_router,
    cron_router,
)

# Admin
from cinebook.api.v1.admin.showtimes import router as admin_showtimes_router

api_router = APIRouter()

# --- Public: showtimes ---
api_router.include_router(showtimes_router)

# --- Public: bookings ---
api_router.include_router(bookings_router)

# --- Public: payments ---
api_router.include_router(checkout_router)
api_router.include_router(webhook_router)
api_router.include_router(cron_router)

# --- Admin ---
api_router.include_router(admin_showtimes_router)
