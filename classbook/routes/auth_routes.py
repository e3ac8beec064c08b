from fastapi import APIRouter, Depends

from classbook.auth.dependencies import get_current_identity
from classbook.schemas import Identity

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(current_identity: Identity = Depends(get_current_identity)):
    return {
        "id": current_identity.id,
        "role": current_identity.role.value,
        "approval_status": current_identity.approval_status.value,
        "display_name": current_identity.display_name,
    }
