"""HTTP push interface"""

from alert_router.api.server import create_app

__all__ = ['create_app']
