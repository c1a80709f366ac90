"""Elasticsearch client factory.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` by the caller where necessary.
"""
from __future__ import annotations

import logging

from elasticsearch import Elasticsearch

from .config import Settings

logger = logging.getLogger(__name__)


def create_client(config: Settings) -> Elasticsearch:
    logger.info("Connecting to Elasticsearch at %s", config.es_host)
    return Elasticsearch(config.es_host, request_timeout=config.store_timeout_seconds)
