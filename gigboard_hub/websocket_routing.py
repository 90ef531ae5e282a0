from projectmanagement.routing import websocket_urlpatterns as task_board_urlpatterns

websocket_urlpatterns = [
    # Freelancer routes
    *task_board_urlpatterns,
]
