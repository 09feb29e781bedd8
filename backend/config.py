"""
Runtime configuration read from the environment (.env supported).
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from shared.constants import DEFAULT_TTL_HOURS

load_dotenv()

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "evaluaciones.db"


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    public_base_url: Optional[str] = None
    form_base_url: Optional[str] = None
    default_ttl_hours: float = DEFAULT_TTL_HOURS
    scoring_template_path: Optional[Path] = None
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        template = os.getenv("SCORING_TEMPLATE_PATH")
        return cls(
            database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            form_base_url=os.getenv("FORM_BASE_URL") or None,
            default_ttl_hours=float(os.getenv("DEFAULT_LINK_TTL_HOURS", DEFAULT_TTL_HOURS)),
            scoring_template_path=Path(template) if template else None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=_split_csv(os.getenv("CORS_ORIGINS", "*")) or ["*"],
        )


_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
