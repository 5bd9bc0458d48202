"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import categories, copies, definitions, health, instances, tasks

api_v1_router = APIRouter()

# Health (no actor required)
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Flow categories
api_v1_router.include_router(
    categories.router,
    prefix="/flow-categories",
    tags=["Flow Categories"],
)

# Flow definitions
api_v1_router.include_router(
    definitions.router,
    prefix="/flow-definitions",
    tags=["Flow Definitions"],
)

# Flow instances
api_v1_router.include_router(
    instances.router,
    prefix="/flow-instances",
    tags=["Flow Instances"],
)

# Approval tasks
api_v1_router.include_router(
    tasks.router,
    prefix="/tasks",
    tags=["Tasks"],
)

# Copy records
api_v1_router.include_router(
    copies.router,
    prefix="/copies",
    tags=["Copies"],
)
