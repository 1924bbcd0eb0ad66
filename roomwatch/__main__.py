"""Run the API with uvicorn: ``python -m roomwatch``."""
import uvicorn

from config.settings import settings


def main():
    uvicorn.run(
        "roomwatch.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
