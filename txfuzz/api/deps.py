"""Shared FastAPI dependencies for the campaign API routers."""
from functools import lru_cache

from txfuzz.engine.campaign import CampaignController
from txfuzz.engine.tcp_transport import TcpSessionProvider


@lru_cache(maxsize=1)
def get_controller() -> CampaignController:
    return CampaignController(TcpSessionProvider())
