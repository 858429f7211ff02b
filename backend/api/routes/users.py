# backend/api/routes/users.py

from typing import List

from fastapi import APIRouter, Depends

from api.deps import get_registry
from models.models import UserView
from services.identity_registry import IdentityRegistry

router = APIRouter()


@router.get("/users", response_model=List[UserView])
async def list_users(registry: IdentityRegistry = Depends(get_registry)):
    """
    List identities that are currently online.

    Offline identities are kept for attribution of their past messages but are
    not listed here.
    """
    return registry.list_online()
