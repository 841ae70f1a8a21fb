"""
Runtime configuration read from the environment (and .env)
"""
import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

# Payment handshake floor; the simulation never waits less than this.
PAYMENT_SIMULATION_FLOOR = 2.5
CATALOG_TIMEOUT_CEILING = 30.0


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Kiosk settings"""
    api_base_url: str = "http://localhost:8080/api"
    api_token: str = ""
    db_path: str = os.path.join("data", "kiosk.db")
    tax_rate: Decimal = Decimal("5")
    currency_symbol: str = "₹"
    catalog_cache_ttl: float = 120.0
    catalog_timeout: float = CATALOG_TIMEOUT_CEILING
    order_lookup_timeout: float = 15.0
    order_cache_ttl: float = 60.0
    payment_simulation_seconds: float = PAYMENT_SIMULATION_FLOOR
    image_proxy_enabled: bool = False
    max_retries: int = 2
    log_level: str = "INFO"
    log_file: str = os.path.join("logs", "kiosk.log")
    secret_key: str = "your-secret-key-here"

    def __post_init__(self):
        # frozen dataclass: clamp through object.__setattr__
        object.__setattr__(self, "catalog_timeout", min(float(self.catalog_timeout), CATALOG_TIMEOUT_CEILING))
        object.__setattr__(self, "payment_simulation_seconds",
                           max(float(self.payment_simulation_seconds), PAYMENT_SIMULATION_FLOOR))
        object.__setattr__(self, "api_base_url", self.api_base_url.rstrip("/"))

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_base_url=os.getenv("API_BASE_URL", cls.api_base_url),
            api_token=os.getenv("API_TOKEN", ""),
            db_path=os.getenv("KIOSK_DB_PATH", cls.db_path),
            tax_rate=Decimal(os.getenv("KIOSK_TAX_RATE", "5")),
            currency_symbol=os.getenv("CURRENCY_SYMBOL", cls.currency_symbol),
            catalog_cache_ttl=float(os.getenv("CATALOG_CACHE_TTL", "120")),
            catalog_timeout=float(os.getenv("CATALOG_TIMEOUT", "30")),
            order_lookup_timeout=float(os.getenv("ORDER_LOOKUP_TIMEOUT", "15")),
            order_cache_ttl=float(os.getenv("ORDER_CACHE_TTL", "60")),
            payment_simulation_seconds=float(os.getenv("PAYMENT_SIMULATION_SECONDS", "2.5")),
            image_proxy_enabled=_flag("IMAGE_PROXY_ENABLED"),
            max_retries=int(os.getenv("API_MAX_RETRIES", "2")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", cls.log_file),
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
        )
