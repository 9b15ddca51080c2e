"""Initialize the carpool schedule database."""

from src.carpool.config import Settings, load_config
from src.carpool.logging import configure_logging


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    config = load_config(settings)
    print(f"Database initialized: {config.database_url}")


if __name__ == "__main__":
    main()
