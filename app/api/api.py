from fastapi import APIRouter
from .endpoints.users import router as users
from .endpoints.conversions import router as conversions
from .endpoints.uploads import router as uploads
from .endpoints.billing import router as billing
from .endpoints.webhooks import router as webhooks
from .endpoints.plans import router as plans
from .endpoints.files import router as files

api_router = APIRouter()
api_router.include_router(users, tags=["users"])
api_router.include_router(conversions, tags=["conversions"])
api_router.include_router(uploads, tags=["uploads"])
api_router.include_router(billing, tags=["billing"])
api_router.include_router(webhooks, tags=["webhooks"])
api_router.include_router(plans, tags=["plans"])
api_router.include_router(files, tags=["files"])


@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
