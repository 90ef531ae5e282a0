import asyncio

from asgiref.sync import sync_to_async
from django.core.management.base import BaseCommand

from projectmanagement.auto_movement import AutoMovementCoordinator
from projectmanagement.classifier import ReviewGraceWindow
from projectmanagement.services.task_service import load_board_snapshot


class Command(BaseCommand):
    help = 'Watch a freelancer task board and print column changes'

    def add_arguments(self, parser):
        parser.add_argument('--freelancer-id', type=int, required=True)
        parser.add_argument(
            '--once',
            action='store_true',
            help='Classify every column once and exit'
        )

    def handle(self, *args, **options):
        freelancer_id = options['freelancer_id']

        async def fetch_snapshot():
            return await sync_to_async(load_board_snapshot)(freelancer_id)

        async def on_change(column, tasks):
            self.stdout.write(self.style.SUCCESS(f'[{column}] {len(tasks)} task(s)'))
            for task in tasks:
                self.stdout.write(f"  {task['projectTitle']} / {task['title']} ({task['tag']})")

        coordinator = AutoMovementCoordinator(fetch_snapshot, on_change, grace_window=ReviewGraceWindow())

        if options['once']:
            asyncio.run(coordinator.run_due())
            return

        self.stdout.write(f'Watching task board of freelancer {freelancer_id}, Ctrl+C to stop')
        try:
            asyncio.run(coordinator.run(asyncio.Event()))
        except KeyboardInterrupt:
            self.stdout.write('Stopped')
