"""
Database initialization script.

Creates all tables and seeds a small sample catalog: services, companies,
experts, links, assets and one contract with an SLA override. Safe to run
more than once; existing rows are left alone.

Usage:
    python scripts/init_db.py
"""

import asyncio

from sqlalchemy import select

from msp_desk.config import settings
from msp_desk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from msp_desk.shared.infrastructure.logging import get_logger, setup_logging
from msp_desk.tickets.infrastructure.models import (
    AssetModel,
    CompanyExpertLinkModel,
    CompanyProfileModel,
    ContractModel,
    ContractServiceModel,
    ExpertProfileModel,
    ServiceCatalogItemModel,
)

logger = get_logger(__name__)

# (name, first response minutes, resolution minutes)
SERVICE_SEEDS = [
    ("Managed Endpoint Support", 60, 480),
    ("Server Maintenance", 45, 360),
    ("Network Monitoring", 30, 240),
    ("Backup Management", 60, 600),
    ("Security Response", 15, 180),
    ("Email Support", 60, 300),
    ("Database Support", 45, 360),
    ("Onsite Assistance", 120, 1440),
]

COMPANY_COUNT = 3
EXPERT_COUNT = 4


async def _get_or_add(session, model, where, **values):
    result = await session.execute(select(model).where(*where))
    row = result.scalars().first()
    if row is None:
        row = model(**values)
        session.add(row)
        await session.flush()
    return row


async def seed(session) -> None:
    services = []
    for name, first_response, resolution in SERVICE_SEEDS:
        services.append(await _get_or_add(
            session, ServiceCatalogItemModel, [ServiceCatalogItemModel.name == name],
            name=name,
            default_first_response_minutes=first_response,
            default_resolution_minutes=resolution,
            is_active=True,
        ))

    companies = []
    for i in range(1, COMPANY_COUNT + 1):
        user_id = f"company{i:02d}@msp.local"
        companies.append(await _get_or_add(
            session, CompanyProfileModel, [CompanyProfileModel.user_id == user_id],
            user_id=user_id,
            company_name=f"Contoso {i:02d}",
        ))

    experts = []
    for i in range(1, EXPERT_COUNT + 1):
        user_id = f"expert{i:02d}@msp.local"
        experts.append(await _get_or_add(
            session, ExpertProfileModel, [ExpertProfileModel.user_id == user_id],
            user_id=user_id,
            full_name=f"Expert {i:02d}",
            # Last expert stays pending approval
            is_approved=i < EXPERT_COUNT,
        ))

    for index, company in enumerate(companies):
        primary = experts[index % (EXPERT_COUNT - 1)]
        secondary = experts[(index + 1) % (EXPERT_COUNT - 1)]
        for expert, is_primary in ((primary, True), (secondary, False)):
            await _get_or_add(
                session, CompanyExpertLinkModel,
                [
                    CompanyExpertLinkModel.company_profile_id == company.id,
                    CompanyExpertLinkModel.expert_profile_id == expert.id,
                ],
                company_profile_id=company.id,
                expert_profile_id=expert.id,
                is_primary=is_primary,
            )

        await _get_or_add(
            session, AssetModel,
            [AssetModel.company_profile_id == company.id, AssetModel.name == "File Server"],
            company_profile_id=company.id,
            name="File Server",
            primary_expert_profile_id=secondary.id,
        )

    # First company has an active contract tightening the endpoint support SLA
    contract = await _get_or_add(
        session, ContractModel,
        [ContractModel.company_profile_id == companies[0].id, ContractModel.is_active == True],  # noqa: E712
        company_profile_id=companies[0].id,
        is_active=True,
    )
    await _get_or_add(
        session, ContractServiceModel,
        [ContractServiceModel.contract_id == contract.id, ContractServiceModel.service_id == services[0].id],
        contract_id=contract.id,
        service_id=services[0].id,
        custom_first_response_minutes=30,
        custom_resolution_minutes=None,
    )


async def main() -> None:
    setup_logging(settings.log_level, settings.environment)

    init_database()
    try:
        logger.info("Creating database tables")
        await create_tables()

        async with get_session_context() as session:
            await seed(session)

        logger.info("Database initialization complete")
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
