"""
Configuration management using Pydantic Settings
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from equation_backtest.models import ExecutionParams


class BacktestSettings(BaseSettings):
    """Default execution and risk parameters for command-line runs"""

    initial_capital: float = Field(default=100_000.0, gt=0, description="Starting cash")
    commission_pct: float = Field(default=0.1, ge=0, description="Commission, % of notional")
    slippage_bps: float = Field(default=5.0, ge=0, description="Slippage in basis points")
    max_position_pct: float = Field(default=10.0, ge=0, description="Max % of cash per entry")
    stop_loss_pct: Optional[float] = Field(default=None, ge=0, description="Stop-loss %")
    take_profit_pct: Optional[float] = Field(default=None, ge=0, description="Take-profit %")
    trailing_stop_pct: Optional[float] = Field(default=None, ge=0, description="Trailing stop %")

    model_config = SettingsConfigDict(env_prefix="BACKTEST_")

    def to_params(self, **overrides) -> ExecutionParams:
        """Build ExecutionParams, letting non-None overrides win"""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ExecutionParams(**values)


class Settings(BaseSettings):
    """Main application settings"""

    app_name: str = Field(default="Equation Backtest", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment")

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    backtest: BacktestSettings = Field(default_factory=BacktestSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore"
    )


# Global settings instance
settings = Settings()
