from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./buildquote.db"

    # Quote pricing
    QUOTE_MARKUP_PCT: float = 25.0

    # Planner (external 3D design tool)
    PLANNER_BASE_URL: str = "http://localhost:8081/api"
    PLANNER_API_TOKEN: str = ""
    PLANNER_TIMEOUT_SECONDS: int = 30
    PLANNER_OPENINGS_PATH: str = ""  # Optional JSON overriding the built-in window/door tables

    # Catalog codes whose default elements are offered as window choices
    DEFAULT_WINDOW_CODES: List[int] = [11]

    class Config:
        env_file = ".env"


settings = Settings()
