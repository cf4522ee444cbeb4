from fastapi import APIRouter

# Public — availability
from helitour.api.v1.public.slots import router as public_slots_router

# Public — reservations & cancellation
from helitour.api.v1.public.reservations import (
    router as reservations_router,
    policy_router,
)

# Admin
from helitour.api.v1.admin.slots import router as admin_slots_router
from helitour.api.v1.admin.reservations import router as admin_reservations_router
from helitour.api.v1.admin.refunds import router as admin_refunds_router
from helitour.api.v1.admin.cancellation_policies import router as admin_policies_router

api_router = APIRouter()

# --- Public: availability ---
api_router.include_router(public_slots_router)

# --- Public: reservations ---
api_router.include_router(reservations_router)
api_router.include_router(policy_router)

# --- Admin ---
api_router.include_router(admin_slots_router)
api_router.include_router(admin_reservations_router)
api_router.include_router(admin_refunds_router)
api_router.include_router(admin_policies_router)
