from fastapi import Request

from feedstr.main.container import Container
from feedstr.main.exceptions import NotReadyException


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise NotReadyException("Container is not initialized")
    return container
