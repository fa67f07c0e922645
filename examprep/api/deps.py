from typing import Optional
from fastapi import Request
from redis import Redis


def get_storage(request: Request):
    return request.app.state.storage


def get_dispatcher(request: Request):
    return request.app.state.dispatcher


def get_redis(request: Request) -> Optional[Redis]:
    return request.app.state.queue_config.connection
