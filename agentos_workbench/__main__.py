import uvicorn

from agentos_workbench.application.api.api_server import create_app
from agentos_workbench.infrastructure.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
