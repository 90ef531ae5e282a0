import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def board_group_name(freelancer_id):
    return f"task_board_{freelancer_id}"


def notify_board_changed(freelancer_ids):
    """Tell open task boards of these freelancers to re-poll every column"""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    for freelancer_id in freelancer_ids:
        if freelancer_id is None:
            continue
        try:
            async_to_sync(channel_layer.group_send)(
                board_group_name(freelancer_id), {'type': 'board_changed'},
            )
        except Exception as e:
            logger.error(f"Failed to notify task board of freelancer {freelancer_id}: {str(e)}")
