"""
API v1 Router Configuration
Aggregates all API endpoints for version 1
"""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    ai_assistant,
    ai_settings,
    approvals,
    auth,
    comments,
    contracts,
    departments,
    notifications,
    references,
    reports,
    users,
    workflows,
)

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(contracts.router, prefix="/contracts", tags=["Contracts"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["Approvals"])
api_router.include_router(references.router, prefix="/references", tags=["References"])
api_router.include_router(
    departments.router, prefix="/departments", tags=["Departments"]
)
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(users.roles_router, prefix="/roles", tags=["Users"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(
    workflows.rules_router, prefix="/workflow-rules", tags=["Workflows"]
)
api_router.include_router(
    workflows.delegation_router, prefix="/delegation-rules", tags=["Workflows"]
)
api_router.include_router(
    notifications.router, prefix="/notifications", tags=["Notifications"]
)
api_router.include_router(ai_settings.router, prefix="/ai-settings", tags=["AI Assistant"])
api_router.include_router(
    ai_assistant.router, prefix="/ai-assistant", tags=["AI Assistant"]
)
api_router.include_router(comments.router, prefix="/comments", tags=["Comments"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
