from django.core.management.base import BaseCommand, CommandError

from config.celery import app as celery_app
from mediaPipeline.queue import get_lane, lane_names


class Command(BaseCommand):
    help = "Start a Celery worker that consumes a single pipeline lane."

    def add_arguments(self, parser):
        parser.add_argument("lane", help="lane name, e.g. video-processing or render-processing")
        parser.add_argument("--concurrency", type=int, default=None)
        parser.add_argument("--loglevel", default="info")

    def handle(self, *args, **options):
        name = options["lane"]
        try:
            lane = get_lane(name)
        except KeyError:
            raise CommandError(f"Unknown lane {name!r}; choose one of: {', '.join(lane_names())}")

        concurrency = options["concurrency"] or lane.concurrency
        self.stdout.write(f"Consuming {lane.name} with concurrency {concurrency}")
        celery_app.worker_main([
            "worker",
            "-Q", lane.name,
            "-c", str(concurrency),
            "-n", f"{lane.name}@%h",
            "--loglevel", options["loglevel"],
        ])
