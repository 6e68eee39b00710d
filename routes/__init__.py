from .message_routes import router as message_routes
from .notification_routes import router as notification_routes

__all__ = [
    'message_routes',
    'notification_routes'
]
