"""
FastAPI dependencies
"""

from fastapi import Request
from etl.coordinator import JobCoordinator


def get_coordinator(request: Request) -> JobCoordinator:
    """Job coordinator created at application startup"""
    return request.app.state.coordinator
