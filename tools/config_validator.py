"""
Configuration Validation Module

Validates app.yaml against Pydantic schemas.
Ensures the config file is correct before system startup.

Usage:
    from tools.config_validator import validate_all_configs

    errors = validate_all_configs("config")
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        sys.exit(1)
"""
import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError

logger = logging.getLogger(__name__)

APP_CONFIG_FILE = "app.yaml"


# ===== App Schema =====
class TradingConfig(BaseModel):
    """Buy/sell guard rails enforced by the capability gateway"""
    buy_amount_sol: float = Field(default=0.1, gt=0, description="Default ticket size in SOL")
    slippage_bps: int = Field(default=300, gt=0, le=10000, description="Swap slippage tolerance (bps)")
    max_concurrent_positions: int = Field(default=5, gt=0, description="Max open or partial positions")
    max_price_impact_pct: float = Field(default=10.0, gt=0, le=100, description="Reject quotes above this impact")
    fee_reserve_sol: float = Field(default=0.01, ge=0, description="SOL held back for fees on every buy")
    min_start_balance_sol: float = Field(default=0.05, ge=0, description="Refuse to start below this balance")


class SocialConfig(BaseModel):
    """Social search engagement filter defaults"""
    min_likes: int = Field(default=50, ge=0)
    min_retweets: int = Field(default=10, ge=0)
    max_pages: int = Field(default=2, gt=0, le=10)


class AgentConfig(BaseModel):
    """Planner settings"""
    model: str = Field(default="claude-sonnet-4-5-20250929", min_length=1)
    max_tokens: int = Field(default=4096, gt=0)
    max_turns: int = Field(default=20, gt=0, description="Hard bound on planner turns per cycle")


class SupervisorConfig(BaseModel):
    """Cycle failure backoff"""
    base_backoff_s: float = Field(default=10.0, gt=0)
    max_backoff_s: float = Field(default=120.0, gt=0)
    cooldown_s: float = Field(default=300.0, ge=0)
    max_consecutive_failures: int = Field(default=5, gt=0)

    @field_validator('max_backoff_s')
    @classmethod
    def validate_backoff_cap(cls, v: float, info) -> float:
        """Ensure max_backoff_s >= base_backoff_s"""
        base = info.data.get('base_backoff_s', 0)
        if v < base:
            raise ValueError(f"max_backoff_s ({v}) must be >= base_backoff_s ({base})")
        return v


class StateConfig(BaseModel):
    positions_file: str = Field(default="data/positions.json", min_length=1)
    activity_file: str = Field(default="data/activity.json", min_length=1)
    activity_max_entries: int = Field(default=500, gt=0)


class ApiConfig(BaseModel):
    """Read API (dashboard) settings"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=3001, ge=0, le=65535)


class MonitoringConfig(BaseModel):
    metrics_enabled: bool = False
    metrics_port: int = Field(default=9100, gt=0, le=65535)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    file: str = Field(default="logs/soltrader.log", min_length=1)


class VenuesConfig(BaseModel):
    """External endpoints and HTTP policy"""
    jupiter_swap_url: str = "https://api.jup.ag/swap/v1"
    jupiter_price_url: str = "https://price.jup.ag/v6/price"
    dexscreener_url: str = "https://api.dexscreener.com/latest/dex/tokens"
    social_search_url: str = "https://api.twitterapi.io/twitter/tweet/advanced_search"
    request_timeout_s: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=3, gt=0)
    rate_limits: Dict[str, float] = Field(default_factory=dict, description="Requests per second by venue")

    @field_validator('rate_limits')
    @classmethod
    def validate_rate_limits(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Validate per-venue rates are positive"""
        for venue, rate in v.items():
            if rate <= 0:
                raise ValueError(f"Rate limit for {venue} must be > 0, got {rate}")
        return v


class AppConfigSchema(BaseModel):
    """Complete app configuration schema"""
    trading: TradingConfig = Field(default_factory=TradingConfig)
    social: SocialConfig = Field(default_factory=SocialConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    venues: VenuesConfig = Field(default_factory=VenuesConfig)


# ===== Validation Functions =====
def _format_yaml_error(file_path: Path, error: yaml.YAMLError) -> str:
    """Return enriched message with line/column context for YAML errors."""

    message = f"Malformed YAML in {file_path}: {error}"
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return message

    line = getattr(mark, "line", None)
    column = getattr(mark, "column", None)
    if line is None or column is None:
        return message

    problem = getattr(error, "problem", str(error))
    try:
        raw_lines = file_path.read_text().splitlines()
    except OSError:
        return f"Malformed YAML in {file_path}: line {line + 1}, column {column + 1}: {problem}"

    start = max(line - 2, 0)
    end = min(line + 3, len(raw_lines))
    snippet = "\n".join(
        f"{'▶' if idx == line else ' '} {idx + 1:04d} | {raw_lines[idx]}"
        for idx in range(start, end)
    )

    return (
        f"Malformed YAML in {file_path}: line {line + 1}, column {column + 1}: {problem}\n"
        f"Context:\n{snippet}"
    )


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load YAML file and return as dict.

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML is malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, 'r') as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(_format_yaml_error(file_path, e))


def validate_app_config(config_dir: Path) -> List[str]:
    """
    Validate app.yaml against schema.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    app_path = config_dir / APP_CONFIG_FILE

    try:
        config = load_yaml_file(app_path)
        AppConfigSchema(**config)
        logger.info("✅ app.yaml validation passed")
    except FileNotFoundError as e:
        errors.append(f"app.yaml: {e}")
    except yaml.YAMLError as e:
        errors.append(f"app.yaml: Invalid YAML - {e}")
    except ValidationError as e:
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            errors.append(f"app.yaml: {field}: {error['msg']}")
    except Exception as e:
        errors.append(f"app.yaml: Unexpected error - {e}")

    return errors


def validate_sanity_checks(config_dir: Path) -> List[str]:
    """
    Logical consistency checks the schema cannot express.

    Detects:
    - Start balance threshold that cannot cover one fee reserve
    - Ledger and activity feed pointed at the same file
    - Read API and metrics exporter on the same port
    """
    errors = []
    config = AppConfigSchema(**load_yaml_file(config_dir / APP_CONFIG_FILE))
    trading = config.trading

    if trading.min_start_balance_sol < trading.fee_reserve_sol:
        errors.append(
            f"trading.min_start_balance_sol ({trading.min_start_balance_sol}) is below "
            f"trading.fee_reserve_sol ({trading.fee_reserve_sol})"
        )

    if config.state.positions_file == config.state.activity_file:
        errors.append("state.positions_file and state.activity_file must differ")

    if config.api.enabled and config.monitoring.metrics_enabled and config.api.port == config.monitoring.metrics_port:
        errors.append(f"api.port and monitoring.metrics_port both set to {config.api.port}")

    if not errors:
        logger.info("✅ Configuration sanity checks passed")
    else:
        logger.warning(f"⚠️  {len(errors)} sanity check issue(s) found")

    return errors


def validate_all_configs(config_dir: str = "config") -> List[str]:
    """
    Validate all configuration files.

    Performs:
    1. Schema validation (Pydantic type checks)
    2. Sanity checks (logical consistency)

    Returns:
        List of all error messages (empty if all valid)
    """
    config_path = Path(config_dir)

    all_errors = validate_app_config(config_path)

    # Sanity checks (only if schema validation passed)
    if not all_errors:
        all_errors.extend(validate_sanity_checks(config_path))

    if not all_errors:
        logger.info("✅ All config files validated successfully")
    else:
        logger.error(f"❌ {len(all_errors)} validation error(s) found")

    return all_errors


def load_app_config(config_dir: str = "config") -> AppConfigSchema:
    """
    Load and validate app.yaml.

    Raises:
        ValueError: listing every validation error
    """
    errors = validate_all_configs(config_dir)
    if errors:
        raise ValueError("Invalid configuration:\n  " + "\n  ".join(errors))
    return AppConfigSchema(**load_yaml_file(Path(config_dir) / APP_CONFIG_FILE))


if __name__ == "__main__":
    """Run validation from command line"""
    import sys

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    config_dir = sys.argv[1] if len(sys.argv) > 1 else "config"

    errors = validate_all_configs(config_dir)

    if errors:
        print("\n❌ Configuration Validation Failed:\n")
        for error in errors:
            print(f"  • {error}")
        print()
        sys.exit(1)
    else:
        print("\n✅ All configuration files are valid!\n")
        sys.exit(0)
