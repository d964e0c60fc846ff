"""Resource groups built on the fallback dispatcher and discovery cache."""

from .base import Page, ResourceGroup, extract_items, to_page
from .branches import BranchesAPI
from .cash import CashAccountsAPI
from .settings import SettingsAPI
from .tenants import TenantsAPI

__all__ = [
    "Page",
    "ResourceGroup",
    "extract_items",
    "to_page",
    "BranchesAPI",
    "CashAccountsAPI",
    "SettingsAPI",
    "TenantsAPI",
]
