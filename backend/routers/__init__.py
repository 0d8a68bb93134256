from .phone import router as phone_router
from .phone_webhooks import router as phone_webhooks_router
from .phone_debug import router as phone_debug_router

__all__ = [
    'phone_router',
    'phone_webhooks_router',
    'phone_debug_router',
]
