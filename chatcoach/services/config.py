"""
Public configuration reads
"""

import logging
from typing import Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from chatcoach.domain.appconfig import filter_config_by_version
from chatcoach.models.app_config import Config

logger = logging.getLogger(__name__)


class ConfigService:
    """Resolves config values for a client's app, platform, env and version"""

    @staticmethod
    def get_configs(
        db: Session,
        keys: Optional[List[str]] = None,
        app: str = "",
        platform: str = "",
        env: str = "",
        version: str = "",
    ) -> Dict[str, str]:
        """
        Active value per key.

        Each of ``app``, ``platform`` and ``env`` matches rows with the same
        value or an empty one; an empty filter matches every row.
        """
        query = db.query(Config)
        if keys:
            query = query.filter(Config.key.in_(keys))
        if app:
            query = query.filter(or_(Config.app == app, Config.app == ""))
        if platform:
            query = query.filter(or_(Config.platform == platform, Config.platform == ""))
        if env:
            query = query.filter(or_(Config.env == env, Config.env == ""))

        rows = query.all()
        selected = filter_config_by_version(rows, version)
        logger.info(f"Resolved {len(selected)} of {len(rows)} config rows for version={version!r} env={env!r}")
        return {key: row.value for key, row in selected.items()}
