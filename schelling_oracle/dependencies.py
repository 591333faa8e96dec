"""
FastAPI dependencies shared by the routers.
"""

from fastapi import Request

from schelling_oracle.protocol.service import OracleService


def get_service(request: Request) -> OracleService:
    """Return the service attached to the running application."""
    return request.app.state.service
