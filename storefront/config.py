import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv(
        "POSTGRES_CONNECTION_STRING", "sqlite+aiosqlite:///./storefront.db"
    )

    # API
    SERVICE_URL: str = os.getenv("SERVICE_URL", "http://localhost:8000")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "storefront.order-events")

    # Ценообразование (НДС ЮАР 15%, бесплатная доставка от R500)
    TAX_RATE: Decimal = Decimal(os.getenv("TAX_RATE", "0.15"))
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "500"))
    FLAT_SHIPPING_FEE: Decimal = Decimal(os.getenv("FLAT_SHIPPING_FEE", "50"))
    LOW_STOCK_THRESHOLD: int = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))

    # PayFast
    PAYFAST_MERCHANT_ID: str = os.getenv("PAYFAST_MERCHANT_ID", "10000100")
    PAYFAST_MERCHANT_KEY: str = os.getenv("PAYFAST_MERCHANT_KEY", "46f0cd694581a")
    PAYFAST_PASSPHRASE: str = os.getenv("PAYFAST_PASSPHRASE", "")
    PAYFAST_SANDBOX: bool = _as_bool(os.getenv("PAYFAST_SANDBOX", "true"))
    PAYFAST_VALIDATE_ITN: bool = _as_bool(os.getenv("PAYFAST_VALIDATE_ITN", "false"))
    PAYMENT_AMOUNT_TOLERANCE: Decimal = Decimal(os.getenv("PAYMENT_AMOUNT_TOLERANCE", "0.01"))

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Синхронный URL для Alembic"""
        return (
            self.POSTGRES_CONNECTION_STRING
            .replace("postgres://", "postgresql://")
            .replace("sqlite+aiosqlite://", "sqlite://")
        )

    @property
    def PAYFAST_HOST(self) -> str:
        return "sandbox.payfast.co.za" if self.PAYFAST_SANDBOX else "www.payfast.co.za"

    @property
    def PAYFAST_PROCESS_URL(self) -> str:
        return f"https://{self.PAYFAST_HOST}/eng/process"

    @property
    def PAYFAST_VALIDATE_URL(self) -> str:
        return f"https://{self.PAYFAST_HOST}/eng/query/validate"


settings = Settings()
