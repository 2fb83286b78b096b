"""
Business logic services.
Contains service layer implementations for core business operations.
"""

from .auth_service import AuthService
from .export_service import ExportService
from .finalization_service import FinalizationService
from .menu_service import MenuService
from .scheduler import AutoFinalizeScheduler
from .voting_service import VotingService

__all__ = [
    "AuthService",
    "ExportService",
    "FinalizationService",
    "MenuService",
    "AutoFinalizeScheduler",
    "VotingService",
]
