from .connection import get_db, engine, AsyncSessionLocal, init_db, Base

# Import phone models to ensure they are registered with Base
from .phone_models import PhoneNumberDB, PhoneMessageDB

__all__ = [
    'get_db', 'engine', 'AsyncSessionLocal', 'init_db', 'Base',
    # Phone models
    'PhoneNumberDB', 'PhoneMessageDB',
]
