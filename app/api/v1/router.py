"""
API v1 router setup
Organized into: public supplier scheduling, buyer orders (JWT) and supplier orders (JWT + supplier claim)
"""
from fastapi import APIRouter

from app.api.v1 import orders, supplier_orders, suppliers

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No authentication required)
# ============================================================================
api_v1_router.include_router(suppliers.router)

# ============================================================================
# BUYER ROUTES (JWT authentication required)
# ============================================================================
api_v1_router.include_router(orders.router)

# ============================================================================
# SUPPLIER ROUTES (JWT with supplier_id claim required)
# ============================================================================
api_v1_router.include_router(supplier_orders.router)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """
    API information and available endpoints.
    """
    return {
        "version": "1.0",
        "authentication": {
            "public": "No authentication required (available windows)",
            "buyer": "JWT Bearer token with phone claim",
            "supplier": "JWT Bearer token with supplier_id claim"
        }
    }
