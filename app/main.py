import uvicorn
from dotenv import load_dotenv

load_dotenv()

from server import server  # noqa: E402  # pylint: disable=wrong-import-position

server_app = server.handler


def main(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Serve the API; background jobs start with the application lifespan."""
    uvicorn.run(server_app, host=host, port=port)


if __name__ == "__main__":
    main()
