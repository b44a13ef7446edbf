# src/fleetdesk/repositories/__init__.py
from .association_repository import AssociationRepository
from .company_repository import CompanyRepository

__all__ = [
    "AssociationRepository",
    "CompanyRepository",
]
