from fastapi import APIRouter, Depends

from ..deps import current_profile, get_store
from ..services.dashboard import build_dashboard
from ..services.store import RecordStore
from ..services.users import require_seller
from ..utils.clock import utcnow

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
def dashboard(profile=Depends(current_profile), store: RecordStore = Depends(get_store)):
    seller = require_seller(profile)
    return {"ok": True, **build_dashboard(store, seller, utcnow())}
