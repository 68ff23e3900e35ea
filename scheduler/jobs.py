"""The three maintenance jobs: purge expired codes, re-index widgets and templates."""

from __future__ import annotations

from config import SchedulerSettings
from repositories.templates import TemplateRepository
from repositories.verifications import VerificationRepository
from repositories.widgets import WidgetRepository
from scheduler.scheduler import Job

CLEAN_CODES = "clean_codes"
WIDGET_BULK = "widget_bulk"
TEMPLATE_BULK = "template_bulk"


def build_jobs(
    settings: SchedulerSettings,
    verifications: VerificationRepository,
    widgets: WidgetRepository,
    templates: TemplateRepository,
    *,
    bulk_page_size: int = 500,
) -> list[Job]:
    async def clean_codes() -> int:
        return await verifications.delete_expired()

    async def widget_bulk() -> int:
        return await widgets.bulk_index(bulk_page_size)

    async def template_bulk() -> int:
        return await templates.bulk_index(bulk_page_size)

    return [
        Job(
            CLEAN_CODES,
            settings.clean_codes_interval_seconds,
            settings.clean_codes_timeout_seconds,
            clean_codes,
        ),
        Job(
            WIDGET_BULK,
            settings.widget_bulk_interval_seconds,
            settings.widget_bulk_timeout_seconds,
            widget_bulk,
        ),
        Job(
            TEMPLATE_BULK,
            settings.template_bulk_interval_seconds,
            settings.template_bulk_timeout_seconds,
            template_bulk,
        ),
    ]
