import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database
from pymongo.errors import PyMongoError

from storefront.db.mongo import get_db
from storefront.services import site_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def public_site_settings(db: Database = Depends(get_db)):
    try:
        settings = site_settings.get_settings(db)
    except PyMongoError as e:
        logger.error("Error fetching site settings: %s", e)
        return site_settings.public_view(site_settings.DEFAULT_SETTINGS)
    return site_settings.public_view(settings)
