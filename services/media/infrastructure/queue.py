from __future__ import annotations

from redis import Redis
from rq import Queue, Worker as RQWorker

from services.media.config import MediaConfig

# A sweep aborts one remote upload per stale session.
SWEEP_JOB_TIMEOUT = 900


def create_redis_connection(config: MediaConfig) -> Redis:
    return Redis(host=config.redis_host, port=config.redis_port, db=config.redis_db)


def create_queue(config: MediaConfig, queue_name: str | None = None) -> Queue:
    return Queue(
        queue_name or config.janitor_queue_name,
        connection=create_redis_connection(config),
        default_timeout=SWEEP_JOB_TIMEOUT,
    )


def create_worker(config: MediaConfig, queue_name: str | None = None) -> RQWorker:
    redis_conn = create_redis_connection(config)
    queue = Queue(queue_name or config.janitor_queue_name, connection=redis_conn)
    return RQWorker([queue], connection=redis_conn)
