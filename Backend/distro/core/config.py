import os
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate the absolute path to the .env file.
# It finds this file's location and navigates up to the project root.
_config_dir = os.path.dirname(os.path.abspath(__file__))
_backend_dir = os.path.dirname(os.path.dirname(_config_dir))
_project_root = os.path.dirname(_backend_dir)
_dotenv_path = os.path.join(_project_root, '.env')



class Settings(BaseSettings):
    DATABASE_URL: str
    DATABASE_ECHO: bool = False
    ENVIRONMENT: str = "development"

    # JWT settings for the panel's own login cookie
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # External distribution API
    CATALOG_API_URL: str
    CATALOG_API_KEY: str = ""
    CATALOG_REFERER: str = ""
    CATALOG_USERNAME: str = ""
    CATALOG_PASSWORD: str = ""
    CATALOG_TOKEN_TTL_SECONDS: int = 3000
    CATALOG_TIMEOUT_SECONDS: float = 120.0

    # Release used when a staged track does not name one
    DEFAULT_RELEASE: int = 0
    DEFAULT_COPYRIGHT_YEAR: str = "2025"

    # Local scratch space for chunked uploads
    TEMP_UPLOAD_DIR: str = "temp_uploads"
    STAGING_TTL_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=_dotenv_path,
        env_file_encoding='utf-8',
        extra='ignore'
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

settings = Settings()
