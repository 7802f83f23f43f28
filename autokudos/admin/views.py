from sqladmin import ModelView
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request

from autokudos.config import settings
from autokudos.models import PendingActivity, SeenActivity, UsageLedger


class _ReadOnlyView(ModelView):
    # Engine-owned tables
    can_create = False
    can_edit = False
    can_delete = False


class PendingActivityAdmin(_ReadOnlyView, model=PendingActivity):
    name = "Pending Activity"
    name_plural = "Pending Batch"
    icon = "fa-solid fa-hourglass-half"
    column_list = [
        PendingActivity.activity_id,
        PendingActivity.source,
        PendingActivity.queued_at,
    ]
    column_sortable_list = [PendingActivity.queued_at, PendingActivity.activity_id]
    column_filters = [PendingActivity.source]
    can_export = True
    page_size = 50
    page_size_options = [25, 50, 100]


class SeenActivityAdmin(_ReadOnlyView, model=SeenActivity):
    name = "Seen Activity"
    name_plural = "Seen Activities"
    icon = "fa-solid fa-eye"
    column_list = [SeenActivity.activity_id, SeenActivity.seen_at]
    column_searchable_list = [SeenActivity.activity_id]
    column_sortable_list = [SeenActivity.seen_at]
    page_size = 100


class UsageLedgerAdmin(_ReadOnlyView, model=UsageLedger):
    name = "Usage Ledger"
    name_plural = "Usage Ledger"
    icon = "fa-solid fa-chart-line"
    column_list = [
        UsageLedger.total_sent,
        UsageLedger.active_days,
        UsageLedger.last_active_day,
        UsageLedger.last_flush_at,
    ]


class AdminAuth(AuthenticationBackend):
    async def login(self, request: Request) -> bool:
        form = await request.form()
        if (
            form.get("username") == settings.ADMIN_USERNAME
            and form.get("password") == settings.ADMIN_PASSWORD
        ):
            request.session.update({"authenticated": True})
            return True
        return False

    async def authenticate(self, request: Request) -> bool:
        return request.session.get("authenticated", False)

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True
