import uvicorn

from hirepipe.core.config import settings


def main() -> None:
    uvicorn.run("hirepipe.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
