from typing import Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .storage import FirestoreSettings, StorageSettings


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = False
    file_logs: bool = False  # rotating file sink under log_dir
    log_dir: str = "./logs"


class AppSettings(BaseSettings):
    """
    Settings tree, populated from FIREPERSIST_* environment variables and env files.

    Nested fields use "__", e.g. FIREPERSIST_STORAGE__BACKEND=memory or
    FIREPERSIST_FIRESTORE__PROJECT=my-project.
    """

    model_config = SettingsConfigDict(
        env_prefix="FIREPERSIST_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    firestore: FirestoreSettings = FirestoreSettings()
    storage: StorageSettings = StorageSettings()
    logging: LoggingSettings = LoggingSettings()
