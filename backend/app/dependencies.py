from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

if TYPE_CHECKING:
    from app.services.installation import InstallationService


def get_installation_service(request: Request) -> "InstallationService":
    service = getattr(request.app.state, "installation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Installation service is not initialized")
    return service
