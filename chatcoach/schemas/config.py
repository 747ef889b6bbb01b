"""
Client configuration schemas
"""

from typing import Dict, List
from pydantic import BaseModel, Field


class GetConfigRequest(BaseModel):
    keys: List[str] = Field(default_factory=list, description="Keys to fetch; empty fetches all")
    app: str = ""
    platform: str = ""


class GetConfigResponse(BaseModel):
    configs: Dict[str, str] = Field(default_factory=dict)
