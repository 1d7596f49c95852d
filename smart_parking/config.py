import os


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./parking.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))
    # Lot layout: handicap slots first, then EV charging, the rest standard
    TOTAL_SLOTS: int = int(os.getenv("TOTAL_SLOTS", "100"))
    HANDICAP_SLOTS: int = int(os.getenv("HANDICAP_SLOTS", "5"))
    EV_SLOTS: int = int(os.getenv("EV_SLOTS", "5"))


settings = Settings()
