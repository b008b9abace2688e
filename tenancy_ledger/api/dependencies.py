"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tenancy_ledger.infrastructure.clients.notifier import NotificationClient
from tenancy_ledger.infrastructure.database.session import get_db
from tenancy_ledger.services.ledger_service import LedgerService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    """Provide ledger service bound to the request's database session"""
    return LedgerService(db)


def get_notification_client() -> NotificationClient:
    """Provide mail webhook client instance"""
    return NotificationClient()
