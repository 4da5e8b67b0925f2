"""Dependency injection for FastAPI endpoints"""

from fastapi import Header, Request
from placement_lifecycle.infrastructure.clients.ledger import LedgerClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_company_id(x_company_id: str = Header(..., min_length=1)) -> str:
    """Tenant resolved by the upstream auth gateway"""
    return x_company_id


def get_actor(x_user_id: str = Header(..., min_length=1)) -> str:
    """User performing the operation, recorded on lifecycle events"""
    return x_user_id


def get_ledger_client() -> LedgerClient:
    """Provide Ledger webhook client instance"""
    return LedgerClient()
