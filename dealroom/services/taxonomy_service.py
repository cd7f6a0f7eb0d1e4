"""
Diligence taxonomy and template catalogue.

Categories and subcategories are read-mostly reference data used to classify
requests. Templates are read-only at apply time (see template_service).

The standard taxonomy below mirrors the default data-room folder structure
offered to every new deal.
"""

import logging

from sqlalchemy import select

from dealroom.models import db
from dealroom.models.diligence import (
    DiligenceCategory,
    DiligenceSubcategory,
    DiligenceTemplate,
)

logger = logging.getLogger(__name__)

# ── Standard diligence taxonomy ───────────────────────────────────────────────

DEFAULT_TAXONOMY: list[dict] = [
    {
        "name": "Corporate & Legal", "icon": "scale", "color": "#6366F1",
        "subcategories": [
            "Articles of Incorporation & Operating Agreements",
            "Business Licenses & Permits",
            "Client Contracts & Service Agreements",
            "Employment Agreements",
            "Insurance Policies (Liability E&O)",
            "Intellectual Property",
            "Legal or Dispute History",
            "NDAs & Confidentiality Agreements",
            "Office & Lease Agreements",
            "Vendor & Contractor Agreements",
        ],
    },
    {
        "name": "Financials", "icon": "bar-chart-3", "color": "#10B981",
        "subcategories": [
            "Historical Financial Statements (3-5 years)",
            "Monthly/Quarterly P&L",
            "Balance Sheets",
            "Cash Flow Statements",
            "Accounts Receivable Aging",
            "Accounts Payable Summary",
            "Tax Returns (3 years)",
            "Bank Statements (12 months)",
        ],
    },
    {
        "name": "Operations", "icon": "settings", "color": "#F59E0B",
        "subcategories": [
            "Standard Operating Procedures",
            "Vendor Relationships & Contracts",
            "Tools & Software Licenses",
            "Process Documentation",
            "Quality Control Procedures",
            "Inventory Management",
        ],
    },
    {
        "name": "Client Base & Contracts", "icon": "users", "color": "#3B82F6",
        "subcategories": [
            "Top 10 Customer Contracts",
            "Customer Concentration Analysis",
            "Client Retention Metrics",
            "Revenue by Customer",
            "Recurring vs One-time Revenue Breakdown",
        ],
    },
    {
        "name": "Services & Deliverables", "icon": "folder", "color": "#8B5CF6",
        "subcategories": [
            "Service Catalog / Menu",
            "Pricing Structure",
            "Service Level Agreements",
            "Delivery Process Documentation",
        ],
    },
    {
        "name": "Marketing & Sales", "icon": "folder", "color": "#EC4899",
        "subcategories": [
            "Marketing Materials & Collateral",
            "Sales Process Documentation",
            "Lead Generation Sources",
            "Customer Acquisition Costs",
            "Sales Pipeline Overview",
        ],
    },
    {
        "name": "Revenue & Performance", "icon": "bar-chart-3", "color": "#14B8A6",
        "subcategories": [
            "Revenue by Service Line",
            "Gross Margin Analysis",
            "KPI Dashboard/Metrics",
            "Year-over-Year Growth Analysis",
            "Seasonality Analysis",
        ],
    },
    {
        "name": "Technology & Integrations", "icon": "cpu", "color": "#0EA5E9",
        "subcategories": [
            "Technology Stack Overview",
            "Software Licenses & Subscriptions",
            "Integration Documentation",
            "Data Security Policies",
            "IT Infrastructure Details",
        ],
    },
    {
        "name": "Human Resources", "icon": "users", "color": "#F97316",
        "subcategories": [
            "Organization Chart",
            "Employee Roster & Compensation",
            "Benefits Summary",
            "Employee Handbook",
            "Key Employee Agreements",
            "Contractor Agreements",
        ],
    },
    {
        "name": "Miscellaneous", "icon": "folder", "color": "#6B7280",
        "subcategories": [
            "Debt Documents & Loan Agreements",
            "Pending Litigation",
            "Environmental Compliance",
            "Other Material Agreements",
        ],
    },
]


# ── Queries ───────────────────────────────────────────────────────────────────


def list_categories() -> list[dict]:
    stmt = select(DiligenceCategory).order_by(DiligenceCategory.order_index, DiligenceCategory.name)
    return [c.to_dict() for c in db.session.execute(stmt).scalars().all()]


def list_subcategories() -> list[dict]:
    stmt = select(DiligenceSubcategory).order_by(
        DiligenceSubcategory.order_index, DiligenceSubcategory.name,
    )
    return [s.to_dict() for s in db.session.execute(stmt).scalars().all()]


def list_templates() -> list[dict]:
    """Templates newest first."""
    stmt = select(DiligenceTemplate).order_by(DiligenceTemplate.created_at.desc())
    return [t.to_dict() for t in db.session.execute(stmt).scalars().all()]


# ── Seeding ───────────────────────────────────────────────────────────────────


def seed_default_taxonomy() -> int:
    """
    Insert the standard categories and their subcategories.

    Safe to run multiple times: existing categories (matched by exact name)
    and existing subcategories (matched by name within the category) are
    skipped. The caller commits.

    Returns:
        Number of rows (categories + subcategories) added.
    """
    existing = {
        c.name: c for c in db.session.execute(select(DiligenceCategory)).scalars().all()
    }
    created = 0

    for cat_index, entry in enumerate(DEFAULT_TAXONOMY):
        category = existing.get(entry["name"])
        if category is None:
            category = DiligenceCategory(
                name=entry["name"],
                icon=entry["icon"],
                color=entry["color"],
                order_index=cat_index,
            )
            db.session.add(category)
            db.session.flush()
            created += 1

        known = {s.name for s in category.subcategories}
        for sub_index, sub_name in enumerate(entry["subcategories"]):
            if sub_name in known:
                continue
            db.session.add(DiligenceSubcategory(
                category_id=category.id,
                name=sub_name,
                order_index=sub_index,
            ))
            created += 1

    if created > 0:
        db.session.flush()
        logger.info("Seeded %d diligence taxonomy rows", created)

    return created
