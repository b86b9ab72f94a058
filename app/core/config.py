from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Albaranes API"
    API_V1_STR: str = "/api"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Delivery notes for clients and projects, signed and archived on IPFS"

    # MongoDB
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "albaranes"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # JWT (tokens are issued by the identity service, only verified here)
    JWT_SECRET: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 30

    # Pinata (IPFS pinning)
    PINATA_API_KEY: str = ""
    PINATA_SECRET_API_KEY: str = ""
    PINATA_API_URL: str = "https://api.pinata.cloud"
    PINATA_PIN_PATH: str = "/pinning/pinFileToIPFS"
    PINATA_GATEWAY_URL: str = "https://gateway.pinata.cloud"
    PINATA_CID_VERSION: int = 0

    # Signing pipeline timeouts (seconds)
    PINNING_TIMEOUT_SECONDS: float = 30.0
    RENDER_TIMEOUT_SECONDS: float = 20.0

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

    @property
    def pinning_configured(self) -> bool:
        return bool(self.PINATA_API_KEY and self.PINATA_SECRET_API_KEY)

settings = Settings()
