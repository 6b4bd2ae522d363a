"""Health check blueprint."""

from __future__ import annotations

from flask import Blueprint, jsonify

from inphrone.database.connection import get_db_pool
from inphrone.utils.performance import PerformanceMonitor
from inphrone.web.routes.common import services


health_bp = Blueprint("health", __name__)
monitor = PerformanceMonitor()


@health_bp.route("/health")
def health_check():
    db_pool = get_db_pool()
    monitor.record_db_pool(db_pool.size, db_pool.available)
    feed = services().feed

    data = {
        "status": "ok",
        "db_pool_size": db_pool.size,
        "db_pool_available": db_pool.available,
        "feed_connected": feed.connected,
        "feed_subscribers": feed.subscriber_count,
        "host": monitor.gather_host_metrics(),
    }
    return jsonify(data)
