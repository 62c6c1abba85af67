from slowapi import Limiter
from slowapi.util import get_remote_address

# Per-client-address limiter shared by the app and the routers that decorate endpoints
limiter = Limiter(key_func=get_remote_address)
