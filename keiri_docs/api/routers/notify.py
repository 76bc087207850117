from datetime import date

from fastapi import APIRouter, Depends

from ..deps import CurrentUser, get_current_user, mailer_dependency, store_dependency
from ...services.notifications import run_notifications
from ...services.resend_client import ResendClient
from ...services.storage import AccountingStoreBase

router = APIRouter(tags=["notify"])


@router.post("/notify")
async def notify(
    user: CurrentUser = Depends(get_current_user),
    store: AccountingStoreBase = Depends(store_dependency),
    mailer: ResendClient = Depends(mailer_dependency),
):
    """Check and send the enabled e-mail notifications for the caller"""
    return await run_notifications(store, mailer, user.id, date.today())
