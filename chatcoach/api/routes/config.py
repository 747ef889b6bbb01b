"""
Client configuration API
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.schemas.config import GetConfigRequest, GetConfigResponse
from chatcoach.services.config import ConfigService

router = APIRouter()


def _resolve(db: Session, request: Request, data: GetConfigRequest) -> GetConfigResponse:
    cond = AppConfigCond.from_headers(request.headers)
    configs = ConfigService.get_configs(
        db,
        keys=data.keys,
        app=data.app,
        platform=data.platform,
        env=cond.env,
        version=cond.version,
    )
    return GetConfigResponse(configs=configs)


@router.get("/config", response_model=GetConfigResponse)
def get_config(
    request: Request,
    keys: Optional[List[str]] = Query(None),
    app: str = "",
    platform: str = "",
    db: Session = Depends(get_db)
):
    """
    Config values for the calling client's version and environment

    Version and environment come from the X-App-Version and X-App-Env headers.
    """
    return _resolve(db, request, GetConfigRequest(keys=keys or [], app=app, platform=platform))


@router.post("/config", response_model=GetConfigResponse)
def post_config(request: Request, data: GetConfigRequest, db: Session = Depends(get_db)):
    return _resolve(db, request, data)
