from django.urls import re_path
from .consumers import TaskBoardConsumer

websocket_urlpatterns = [
    re_path(r"ws/freelancer/task-board/$", TaskBoardConsumer.as_asgi()),
]
