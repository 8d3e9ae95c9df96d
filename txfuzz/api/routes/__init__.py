"""Route bundles for the campaign API."""
from . import campaign, system, targets

ROUTERS = [
    targets.router,
    campaign.router,
    system.router,
]
