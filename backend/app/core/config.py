from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    env: str = "dev"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_minutes: int = 60 * 24 * 30
    database_url: str = "postgresql+psycopg2://storeuser:storepass@db:5432/store"
    backend_cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    # Calendario del negocio (días de servicio, festivos y fechas de entrega)
    timezone: str = "America/Mexico_City"

    # Valores con los que se crea la configuración de Efectivo Express la primera vez
    cash_express_max_amount: float = 1000
    cash_express_commission_percentage: float = 6.5
    cash_express_daily_minimum_deposit: float = 500
    cash_express_service_days: List[int] = [1, 2, 3, 4, 5]
    cash_express_start_time: str = "09:00"
    cash_express_end_time: str = "20:00"
    cash_express_non_working_day_message: str = "Tu solicitud será procesada el próximo día hábil."

    # Vigencia de notificaciones (días)
    notification_ttl_days: int = 5
    notification_read_ttl_days: int = 1

    seed_admin_email: str = "admin@mariamstore.com"
    seed_admin_password: str = "admin123"

    # Railway specific - use PORT env var if available
    port: int = int(os.getenv("PORT", "8000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
