"""
Application settings loaded from environment variables.

Note: Teams live in an external team-membership authority. When
TEAM_AUTHORITY_URL is unset, a local JSON authority under the storage
path is used instead (see analysis_worker/teams/authority.py).
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Infrastructure settings loaded from environment variables.
    """

    # Storage root (config/ and analyses/ live underneath)
    storage_path: str = Field(default="./data", alias="ANALYSIS_STORAGE_PATH")

    # Debug mode
    debug_mode: bool = Field(default=False, alias="DEBUG_MODE")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")

    # Security
    api_key: str = Field(default="", alias="API_KEY")  # Optional API key for auth
    allowed_origins: str = Field(default="*", alias="ALLOWED_ORIGINS")

    # -------------------------------------------------------------------------
    # Team Authority Settings
    # -------------------------------------------------------------------------

    organization_slug: str = Field(default="main", alias="ORGANIZATION_SLUG")
    bootstrap_organization: bool = Field(
        default=True,
        alias="BOOTSTRAP_ORGANIZATION",
        description="Create the organization in the local JSON authority if missing.",
    )
    team_authority_url: str = Field(
        default="",
        alias="TEAM_AUTHORITY_URL",
        description="Base URL of the better-auth server. Empty uses the local JSON authority.",
    )
    team_authority_token: str = Field(default="", alias="TEAM_AUTHORITY_TOKEN")
    team_authority_timeout_seconds: float = Field(
        default=10.0, alias="TEAM_AUTHORITY_TIMEOUT_SECONDS"
    )
    default_team_color: str = Field(default="#3B82F6", alias="DEFAULT_TEAM_COLOR")

    # Pagination defaults
    version_page_size: int = Field(default=10, alias="VERSION_PAGE_SIZE")
    log_page_size: int = Field(default=100, alias="LOG_PAGE_SIZE")

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
