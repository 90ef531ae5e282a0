import os
import django
import asyncio
import sys

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "gigboard_hub.settings")
django.setup()

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from gigboard_hub.websocket_routing import websocket_urlpatterns

# Set the event loop policy to use a more scalable reactor
if sys.platform == 'linux':
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

# The task board authenticates with the JWT in its query string
application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    "websocket": AllowedHostsOriginValidator(
        URLRouter(websocket_urlpatterns)
    ),
})
