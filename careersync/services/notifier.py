import json
from typing import Iterator, Optional

import redis
from flask import current_app

CHANNEL_PREFIX = "payment_session:"


def channel_for(session_id: str) -> str:
    return f"{CHANNEL_PREFIX}{session_id}"


def _redis() -> Optional[redis.Redis]:
    url = current_app.config.get("REDIS_URL")
    if not url:
        return None
    return redis.Redis.from_url(url, decode_responses=True)


def push_enabled() -> bool:
    return bool(current_app.config.get("REDIS_URL"))


def publish_status(session_id: str, status: str, **fields) -> bool:
    """
    Best-effort push of a session status change. Never raises: clients fall
    back to polling when the push channel is missing or drops messages.
    """
    conn = _redis()
    if conn is None:
        return False
    message = json.dumps({"session_id": session_id, "status": status, **fields})
    try:
        conn.publish(channel_for(session_id), message)
        return True
    except redis.RedisError:
        current_app.logger.warning("payment_push_publish_failed", extra={"session_id": session_id, "status": status})
        return False
    finally:
        conn.close()


class Subscription:
    """
    Live pub/sub registration for one session. Created subscribed, so a
    status published after construction is never missed; iterate for
    decoded messages (None on every idle heartbeat).
    """

    def __init__(self, conn: redis.Redis, session_id: str, heartbeat_seconds: float = 15.0):
        self.conn = conn
        self.heartbeat_seconds = heartbeat_seconds
        self.pubsub = conn.pubsub(ignore_subscribe_messages=True)
        self.closed = False
        try:
            self.pubsub.subscribe(channel_for(session_id))
        except redis.RedisError:
            self.close()
            raise

    def __iter__(self) -> Iterator[Optional[dict]]:
        while not self.closed:
            msg = self.pubsub.get_message(timeout=self.heartbeat_seconds)
            if msg is None:
                yield None
                continue
            try:
                yield json.loads(msg["data"])
            except (TypeError, ValueError):
                continue

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.pubsub.close()
        self.conn.close()


def subscribe(session_id: str, heartbeat_seconds: float = 15.0) -> Optional[Subscription]:
    """Subscribe now; None when no push backend is configured."""
    conn = _redis()
    if conn is None:
        return None
    return Subscription(conn, session_id, heartbeat_seconds)
