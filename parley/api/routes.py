from fastapi import APIRouter

from parley.api.channels import router as channels_router
from parley.api.conversations import router as conversations_router
from parley.api.files import router as files_router
from parley.api.links import router as links_router
from parley.api.messages import router as messages_router
from parley.api.organizations import router as organizations_router

router = APIRouter()

router.include_router(messages_router)
router.include_router(channels_router)
router.include_router(conversations_router)
router.include_router(organizations_router)
router.include_router(links_router)
router.include_router(files_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Parley API"}
