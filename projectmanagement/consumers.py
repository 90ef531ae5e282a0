import asyncio
import json
import logging
from urllib.parse import parse_qs

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from rest_framework_simplejwt.tokens import AccessToken

from .auto_movement import AutoMovementCoordinator
from .board_events import board_group_name
from .classifier import ReviewGraceWindow
from .services.task_service import load_board_snapshot

logger = logging.getLogger(__name__)


class TaskBoardConsumer(AsyncWebsocketConsumer):
    """Pushes task board columns to a freelancer whenever their membership changes"""
    coordinator_class = AutoMovementCoordinator

    async def connect(self):
        try:
            query = parse_qs(self.scope['query_string'].decode())
            token = (query.get('token') or [''])[0]
            self.user_id = await self.get_user_from_token(token)
            if not self.user_id:
                logger.error("Invalid token, closing task board connection")
                await self.close()
                return

            self.group_name = board_group_name(self.user_id)
            await self.channel_layer.group_add(self.group_name, self.channel_name)
            await self.accept()

            self.stop_event = asyncio.Event()
            self.coordinator = self.coordinator_class(
                fetch_snapshot=self.fetch_snapshot,
                on_change=self.send_column,
                grace_window=ReviewGraceWindow(),
            )
            self.runner = asyncio.ensure_future(self.coordinator.run(self.stop_event))
            logger.info(f"Task board connected for freelancer {self.user_id}")
        except Exception as e:
            logger.error(f"Error in task board connect: {str(e)}")
            await self.close()

    async def disconnect(self, close_code):
        if hasattr(self, 'stop_event'):
            self.stop_event.set()
            self.runner.cancel()
            try:
                await self.runner
            except asyncio.CancelledError:
                pass
        if hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            logger.info(f"Task board disconnected with code: {close_code}")

    async def receive(self, text_data=None, bytes_data=None):
        try:
            message = json.loads(text_data or '{}')
        except ValueError:
            await self.send(text_data=json.dumps({'type': 'error', 'error': 'Invalid JSON'}))
            return

        if message.get('action') == 'refresh' and hasattr(self, 'coordinator'):
            self.coordinator.request_refresh()

    async def board_changed(self, event):
        """Group message sent after a server-side change to this freelancer's tasks"""
        if hasattr(self, 'coordinator'):
            self.coordinator.request_refresh()

    async def fetch_snapshot(self):
        return await sync_to_async(load_board_snapshot)(self.user_id)

    async def send_column(self, column, tasks):
        await self.send(text_data=json.dumps({
            'type': 'column_update',
            'column': column,
            'tasks': tasks,
        }))

    @database_sync_to_async
    def get_user_from_token(self, token):
        """Extract user ID from JWT token"""
        try:
            decoded_token = AccessToken(token)
            user_id = decoded_token['user_id']
            # project records hold numeric ids, some token versions carry strings
            return int(user_id) if str(user_id).isdigit() else user_id
        except Exception as e:
            logger.error(f"Error decoding token: {str(e)}")
            return None
